"""Tests for URL helpers and canonical dedup keys."""

import pytest

from job_harvester.utils.url_utils import (
    canonical_key,
    company_key,
    extract_embedded_job_url,
    extract_job_id,
    host_matches,
    normalize_url,
    resolve_link,
    strip_query_params,
)


class TestCanonicalKey:
    """Regression cases for the dedup key."""

    def test_locale_variants_share_key(self):
        """URLs differing only by locale segment collapse to one key."""
        us = "https://www.acme.com/us/jobs/engineering/7176975"
        gb = "https://acme.com/gb/jobs/engineering/7176975"
        assert canonical_key(us) == canonical_key(gb) == "acme.com:7176975"

    def test_longest_digit_run_wins(self):
        """The longest 4+ digit run is the posting id."""
        url = "https://jobs.example.com/2024/role/12345678?team=1234"
        assert canonical_key(url) == "jobs.example.com:12345678"

    def test_equal_length_tie_takes_rightmost(self):
        """With equal-length runs the rightmost one is chosen."""
        assert extract_job_id("https://x.com/1111/jobs/2222") == "2222"
        assert canonical_key("https://x.com/1111/jobs/2222") == "x.com:2222"
        assert canonical_key("https://x.com/2222/jobs/1111") == "x.com:1111"

    def test_short_digit_runs_ignored(self):
        """Runs shorter than 4 digits do not count as ids."""
        assert extract_job_id("https://x.com/jobs/123/abc") is None
        assert canonical_key("https://X.com/Jobs/123/") == "https://x.com/jobs/123"

    def test_no_id_falls_back_to_lowercased_url(self):
        """Without an id the key is the lowercased URL minus trailing slash."""
        assert canonical_key("https://Acme.com/Careers/Backend-Engineer/") == "https://acme.com/careers/backend-engineer"

    def test_different_hosts_same_id_distinct(self):
        """The host is part of the key."""
        assert canonical_key("https://a.com/jobs/7176975") != canonical_key("https://b.com/jobs/7176975")

    def test_query_id_counts(self):
        """Ids in query strings are found too."""
        assert canonical_key("https://acme.com/careers?gh_jid=4012345") == "acme.com:4012345"


class TestNormalizeUrl:
    """Test report-key normalization."""

    def test_strips_tracking_params_and_fragment(self):
        url = "https://Boards.Greenhouse.io/acme/?utm_source=x&gh_src=abc&page=2#top"
        assert normalize_url(url) == "https://boards.greenhouse.io/acme?page=2"

    def test_empty(self):
        assert normalize_url("") == ""

    def test_relative_passthrough(self):
        assert normalize_url("/jobs/") == "/jobs"


class TestCompanyKey:
    """Test company folder derivation."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://boards.greenhouse.io/acme/jobs/4012345", "acme"),
            ("https://job-boards.greenhouse.io/Globex/jobs/1", "globex"),
            ("https://careers.initech.com/jobs/1234", "initech"),
            ("https://jobs.lever.co/hooli/abc", "lever"),
            ("not a url", "unknown"),
        ],
    )
    def test_company_key(self, url, expected):
        assert company_key(url) == expected


class TestLinkHelpers:
    """Test href resolution and cleanup helpers."""

    def test_resolve_relative(self):
        assert resolve_link("/jobs/1234", "https://acme.com/careers") == "https://acme.com/jobs/1234"

    def test_resolve_rejects_non_navigable(self):
        for href in ("#apply", "mailto:jobs@acme.com", "javascript:void(0)", ""):
            assert resolve_link(href, "https://acme.com") is None

    def test_unwraps_share_links(self):
        wrapped = "https://www.linkedin.com/share?url=https://acme.com/jobs/1234"
        assert extract_embedded_job_url(wrapped) == "https://acme.com/jobs/1234"

    def test_strip_query_params(self):
        url = "https://boards.greenhouse.io/acme/jobs/1?gh_src=x&utm_medium=y&keep=1#frag"
        assert strip_query_params(url, ["gh_src"], prefixes=("utm_",)) == "https://boards.greenhouse.io/acme/jobs/1?keep=1"

    def test_host_matches_on_domain_boundary(self):
        assert host_matches("lever.co", "lever.co")
        assert host_matches("jobs.lever.co", "lever.co")
        assert not host_matches("clever.co", "lever.co")
        assert not host_matches("lever.co.uk", "lever.co")
        assert host_matches("grnh.se", "greenhouse.io", "grnh.se")

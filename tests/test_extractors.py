"""Tests for the structured-data and DOM-analysis extraction layers."""

import json

from bs4 import BeautifulSoup

from job_harvester.extractors.dom_analysis import analyze_dom, extract_title, score_container
from job_harvester.extractors.structured_data import extract_structured_data
from job_harvester.utils.text import clean_description, html_to_text


URL = "https://careers.acme.com/jobs/7176975"

DESCRIPTION_HTML = (
    "<p>We are looking for a Platform Engineer to join our infrastructure team.</p>"
    "<h3>Responsibilities</h3><ul><li>Operate Kubernetes clusters across regions</li>"
    "<li>Build deployment tooling used by every product team</li></ul>"
    "<h3>Requirements</h3><ul><li>5+ years of experience with Linux systems</li>"
    "<li>Strong Python or Go skills</li></ul>"
)


def _json_ld_page(payload):
    return (
        "<html><head><script type='application/ld+json'>"
        f"{json.dumps(payload)}"
        "</script></head><body><h1>Ignored</h1></body></html>"
    )


class TestStructuredData:
    """JSON-LD and embedded state extraction."""

    def test_job_posting(self):
        page = _json_ld_page(
            {
                "@context": "https://schema.org",
                "@type": "JobPosting",
                "title": "Platform Engineer",
                "description": DESCRIPTION_HTML,
                "jobLocation": {"@type": "Place", "address": {"addressLocality": "Berlin", "addressRegion": "BE"}},
                "skills": "Kubernetes, Python",
                "employmentType": "FULL_TIME",
            }
        )
        record = extract_structured_data(page, URL)

        assert record.title == "Platform Engineer"
        assert record.location == "Berlin"
        assert record.skills == ["Kubernetes", "Python"]
        assert record.source_strategy == "structured-data"
        assert "* Operate Kubernetes clusters across regions" in record.description
        assert record.raw_meta["employmentType"] == "FULL_TIME"

    def test_graph_and_region_fallback(self):
        page = _json_ld_page(
            {
                "@graph": [
                    {"@type": "Organization", "name": "Acme"},
                    {
                        "@type": ["JobPosting"],
                        "title": "Data Analyst",
                        "description": "Analyse data.",
                        "jobLocation": [{"address": {"addressRegion": "CA"}}, {"name": "Remote"}],
                    },
                ]
            }
        )
        record = extract_structured_data(page, URL)
        assert record.title == "Data Analyst"
        assert record.location == "CA, Remote"

    def test_missing_location(self):
        page = _json_ld_page({"@type": "JobPosting", "title": "Designer", "description": "Design things."})
        assert extract_structured_data(page, URL).location == "Not specified"

    def test_remix_context(self):
        context = {
            "state": {
                "loaderData": {
                    "routes/$url_token_.jobs_.$job_post_id": {
                        "jobPost": {
                            "title": "Support Engineer",
                            "job_post_location": "Toronto",
                            "content": "&lt;p&gt;Help customers succeed.&lt;/p&gt;",
                        }
                    }
                }
            }
        }
        page = f"<html><script>window.__remixContext = {json.dumps(context)};</script></html>"
        record = extract_structured_data(page, URL)
        assert record.title == "Support Engineer"
        assert record.location == "Toronto"
        assert record.description == "Help customers succeed."

    def test_no_structured_data(self):
        assert extract_structured_data("<html><body><p>Hello</p></body></html>", URL) is None
        assert extract_structured_data("", URL) is None

    def test_invalid_json_ld_ignored(self):
        page = "<html><script type='application/ld+json'>{broken</script></html>"
        assert extract_structured_data(page, URL) is None


class TestDomAnalysis:
    """Heuristic DOM extraction."""

    def test_job_page(self):
        html = (
            "<html><head><title>Acme Careers</title></head><body>"
            "<nav><a href='/'>Home</a><h2>Menu heading here</h2></nav>"
            "<main><h1>Platform Engineer</h1><p>Location: Berlin, Germany</p>"
            f"<div class='content'>{DESCRIPTION_HTML * 2}</div></main>"
            "<footer>Copyright</footer></body></html>"
        )
        record = analyze_dom(html, URL)

        assert record.title == "Platform Engineer"
        assert record.location == "Berlin, Germany"
        assert "Operate Kubernetes clusters" in record.description
        assert "Menu heading" not in record.description
        assert record.source_strategy == "intelligent-analysis"
        assert "5+ years of experience with Linux systems" in record.skills

    def test_error_page_returns_none(self):
        html = "<html><head><title>404 - Page Not Found</title></head><body>Oops</body></html>"
        assert analyze_dom(html, URL) is None

    def test_og_title_preferred(self):
        soup = BeautifulSoup(
            "<html><head><meta property='og:title' content='Staff Engineer - Acme'>"
            "<title>Other</title></head><body><h1>Heading text</h1></body></html>",
            "html.parser",
        )
        assert extract_title(soup) == "Staff Engineer"

    def test_generic_doc_title_skipped(self):
        soup = BeautifulSoup(
            "<html><head><title>Jobs at Acme</title></head><body><h1>Careers</h1><h2>Product Manager</h2></body></html>",
            "html.parser",
        )
        assert extract_title(soup) == "Product Manager"

    def test_listing_container_penalized(self):
        listing = BeautifulSoup(
            "<div>" + "<p>Engineer role in a great team. View job</p>" * 10 + "</div>", "html.parser"
        ).div
        article = BeautifulSoup(f"<div>{DESCRIPTION_HTML * 2}</div>", "html.parser").div
        assert score_container(listing) < 0
        assert score_container(article) > 0


class TestText:
    """Description cleanup helpers."""

    def test_html_to_text_bullets(self):
        assert html_to_text("<ul><li>One</li><li>Two</li></ul>") == "* One\n* Two"

    def test_clean_description_trims_late_marker(self):
        body = "Build things. " * 80
        text = body + "Equal Opportunity Employer statement and more legal text."
        assert clean_description(text) == body.strip()

    def test_clean_description_keeps_early_marker(self):
        text = "Acme is an equal opportunity employer. " + "Build things. " * 10
        assert clean_description(text) == text

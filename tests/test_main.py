"""Tests for the command-line entry point."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from conftest import FakeRenderer, FakeSearchProvider
from job_harvester import main as cli
from job_harvester.storage.ledger import JOB_COLUMNS, SEARCH_RESULT_COLUMNS, Ledger
from job_harvester.storage.runs import links_run, search_run

CAREERS = "https://acme.com/careers"
JOB_ONE = "https://acme.com/jobs/engineering/1111111"
JOB_TWO = "https://acme.com/jobs/design/2222222"

JOB_TEXT = (
    "We are looking for an engineer to join the payments team. Responsibilities include "
    "building services, operating them in production and mentoring others on the team. "
) * 3


def _job_page(title):
    payload = {"@type": "JobPosting", "title": title, "description": JOB_TEXT}
    return f"<html><script type='application/ld+json'>{json.dumps(payload)}</script></html>"


@pytest.fixture
def config(make_config, monkeypatch):
    """Patch config loading and logging setup for CLI runs."""
    cfg = make_config()
    monkeypatch.setattr(cli, "load_config", lambda path=None: cfg)
    monkeypatch.setattr(cli, "setup_logging", lambda: None)
    return cfg


class TestArguments:
    """Argument parsing."""

    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.stage is None
        assert args.run_id is None
        assert args.clean is False
        assert args.force is False

    def test_stage_choices(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--stage", "4"])

    def test_options(self):
        args = cli.build_parser().parse_args(
            ["--stage", "2", "--id", "654321", "--run", "123456", "--use", "serp", "--engine", "bing", "--force"]
        )
        assert (args.stage, args.run_id, args.upstream_run_id) == (2, "654321", "123456")
        assert (args.provider, args.engine, args.force) == ("serp", "bing", True)


class TestResolveQuery:
    """Stage 1 query selection."""

    def test_named_target(self, make_config):
        args = cli.build_parser().parse_args(["--search", "Greenhouse"])
        assert cli.resolve_query(args, make_config()) == 'site:"boards.greenhouse.io"'

    def test_free_form_query(self, make_config):
        args = cli.build_parser().parse_args(["--query", "platform engineer"])
        assert cli.resolve_query(args, make_config()) == "platform engineer"


class TestMain:
    """Exit codes and stage wiring."""

    def test_unknown_search_target_exits_1(self, config):
        assert cli.main(["--stage", "1", "--search", "nowhere"]) == 1

    def test_no_search_provider_exits_1(self, config):
        assert cli.main(["--stage", "1", "--query", "platform engineer"]) == 1

    def test_full_run_without_query_starts_no_browser(self, config, monkeypatch):
        create_renderer = Mock()
        monkeypatch.setattr(cli, "create_renderer", create_renderer)
        assert cli.main([]) == 1
        create_renderer.assert_not_called()

    def test_stage_2_without_upstream_exits_1(self, config, monkeypatch):
        monkeypatch.setattr(cli, "create_renderer", lambda cfg, client: FakeRenderer())
        assert cli.main(["--stage", "2", "--run", "999999"]) == 1

    def test_stage_1(self, config, monkeypatch):
        provider = FakeSearchProvider({1: [CAREERS]})
        clients = []

        def create_search_provider(*args, client=None):
            clients.append(client)
            return provider

        monkeypatch.setattr(cli, "create_search_provider", create_search_provider)

        assert cli.main(["--stage", "1", "--query", "careers", "--id", "123456"]) == 0
        assert clients[0].session.get_adapter("https://serpapi.com").max_retries.total == 0

        rows = Ledger(search_run(config.output.dir, "123456").ledger_path, SEARCH_RESULT_COLUMNS).read()
        assert [row["URL"] for row in rows] == [CAREERS]

    def test_full_pipeline_threads_run_ids(self, config, monkeypatch):
        """Test stages 2 and 3 reuse the stage 1 request id as their run id."""
        listing = f"<html><body><a href='{JOB_ONE}'>Backend</a><a href='{JOB_TWO}'>Designer</a></body></html>"
        renderer = FakeRenderer(
            {CAREERS: listing, JOB_ONE: _job_page("Backend Engineer"), JOB_TWO: _job_page("Product Designer")}
        )
        monkeypatch.setattr(cli, "create_search_provider", lambda *args, **kwargs: FakeSearchProvider({1: [CAREERS]}))
        monkeypatch.setattr(cli, "create_renderer", lambda cfg, client: renderer)

        assert cli.main(["--query", "careers", "--id", "123456"]) == 0

        upstream = Ledger(search_run(config.output.dir, "123456").ledger_path, SEARCH_RESULT_COLUMNS).read()
        assert upstream[0]["STATUS"] == "done"
        assert upstream[0]["JOB_COUNT"] == "2"

        jobs = Ledger(links_run(config.output.dir, "123456").ledger_path, JOB_COLUMNS).read()
        assert {row["URL"]: row["STATUS"] for row in jobs} == {JOB_ONE: "done", JOB_TWO: "done"}
        assert sorted(row["OUTPUT_LOCATION"] for row in jobs) == ["acme/1.txt", "acme/2.txt"]
        assert (Path(config.output.dir) / "jobs" / "123456" / "report.json").exists()

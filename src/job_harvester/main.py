"""Main entry point for the job harvester."""

import argparse
import sys
import time
from typing import Any, Dict, List, Optional

from job_harvester.browser import PageRenderer, create_renderer
from job_harvester.config import DEFAULT_CONFIG_PATH, SERP_ENGINES, HarvesterConfig, load_config
from job_harvester.exceptions import ConfigurationError, TerminalProviderError
from job_harvester.http_client import HttpClient
from job_harvester.logging_config import get_logger, setup_logging
from job_harvester.providers.registry import build_registry
from job_harvester.search import create_search_provider, get_search_query, list_search_targets, search_client
from job_harvester.stages import DetailStage, DiscoveryStage, LinkHarvestStage

# Configure logging (will be called in main())
logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Job Harvester - discover job boards, collect job links and extract job details"
    )
    parser.add_argument(
        "--stage",
        type=int,
        choices=[1, 2, 3],
        help="Run a single stage (default: run stages 1, 2 and 3 in sequence)",
    )
    parser.add_argument("--id", dest="run_id", help="Identifier for this stage's run (generated if omitted)")
    parser.add_argument("--run", dest="upstream_run_id", help="Upstream run to consume (stages 2 and 3)")
    parser.add_argument("--use", dest="provider", choices=["google", "serp"], help="Search provider for stage 1")
    parser.add_argument("--engine", choices=SERP_ENGINES, help="SerpAPI engine (with --use=serp)")
    parser.add_argument("--search", help=f"Named search target ({', '.join(list_search_targets())})")
    parser.add_argument("--query", help="Free-form search query")
    parser.add_argument("--pages", type=int, help="Number of search result pages to fetch")
    parser.add_argument("--clean", action="store_true", help="Reset the run's progress before starting")
    parser.add_argument("--force", action="store_true", help="Reprocess rows already marked done")
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--no-browser", action="store_true", help="Fetch pages over plain HTTP")
    return parser


def resolve_query(args: argparse.Namespace, config: HarvesterConfig) -> str:
    """
    Pick the Stage 1 query from ``--search``, ``--query`` or the config.

    Raises:
        ConfigurationError: Unknown search target, or no query at all.
    """
    if args.search:
        query = get_search_query(args.search)
        if not query:
            raise ConfigurationError(
                f"Unknown search target '{args.search}'. "
                f"Available targets: {', '.join(list_search_targets())}"
            )
        return query
    query = args.query or config.search.query
    if not query:
        raise ConfigurationError(
            f"No search query given. Use --search=<{'|'.join(list_search_targets())}> or --query."
        )
    return query


def run_stage_1(args: argparse.Namespace, config: HarvesterConfig) -> Dict[str, Any]:
    query = resolve_query(args, config)
    client = search_client(config)
    try:
        provider = create_search_provider(config, args.provider, args.engine, client=client)
        return DiscoveryStage(config, provider).run(query, run_id=args.run_id, pages=args.pages, clean=args.clean)
    finally:
        client.close()


def run_pipeline(args: argparse.Namespace, config: HarvesterConfig) -> List[Dict[str, Any]]:
    """
    Run the requested stage, or all three in order.

    Each stage's run id is handed to the next stage as its upstream run.

    Returns:
        Stats dicts of the stages that ran.
    """
    client = HttpClient(timeout=config.search.timeout, user_agent=config.crawler.user_agent)
    renderer: Optional[PageRenderer] = None
    results: List[Dict[str, Any]] = []

    try:
        if args.stage == 1:
            results.append(run_stage_1(args, config))
            return results

        # Validate stage 1 inputs before any browser is started
        if args.stage is None:
            resolve_query(args, config)

        renderer = create_renderer(config, client)
        registry = build_registry(config, client, renderer)

        if args.stage == 2:
            stage = LinkHarvestStage(config, registry, renderer)
            results.append(stage.run(args.upstream_run_id, args.run_id, clean=args.clean, force=args.force))
        elif args.stage == 3:
            stage = DetailStage(config, registry, renderer)
            results.append(stage.run(args.upstream_run_id, args.run_id, clean=args.clean, force=args.force))
        else:
            discovery = run_stage_1(args, config)
            results.append(discovery)
            request_id = discovery["run_id"]

            links = LinkHarvestStage(config, registry, renderer).run(request_id, request_id, clean=args.clean)
            results.append(links)

            details = DetailStage(config, registry, renderer).run(
                links["run_id"], links["run_id"], clean=args.clean, force=args.force
            )
            results.append(details)
        return results
    finally:
        if renderer is not None:
            renderer.close()
        client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function."""
    # Set up logging first (before any logging calls)
    setup_logging()

    args = build_parser().parse_args(argv)
    start = time.monotonic()

    try:
        config = load_config(args.config)
        if args.no_browser:
            config.crawler.use_browser = False
        results = run_pipeline(args, config)
    except (ConfigurationError, TerminalProviderError) as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("⚠️  Interrupted; progress so far is saved")
        return 1

    for stats in results:
        logger.info(f"Run {stats.get('run_id')}: {stats}")
    logger.info(f"✓ All operations completed in {time.monotonic() - start:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Stage 2: job link harvesting.

Consumes the pending/failed rows of a Stage 1 ledger. Each source page is
handed to the provider that claims it (Greenhouse/Lever APIs, or the
generic browser extractor) and the resulting job links are appended to
this run's ``jobs.csv`` after canonical-key deduplication.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional

from job_harvester.browser import PageRenderer
from job_harvester.config import HarvesterConfig
from job_harvester.exceptions import ProviderApiError
from job_harvester.logging_config import get_structured_logger
from job_harvester.models import LedgerStatus, LinkReport, LinkReportEntry
from job_harvester.providers.registry import ProviderRegistry
from job_harvester.stages.workers import WorkQueue, run_workers
from job_harvester.storage.checkpoint import ReportStore
from job_harvester.storage.ledger import JOB_COLUMNS, SEARCH_RESULT_COLUMNS, Ledger
from job_harvester.storage.runs import SEARCH_DIR, generate_run_id, links_run, resolve_upstream_run, search_run
from job_harvester.utils.dedup_cache import DuplicationCache
from job_harvester.utils.url_utils import normalize_url

logger = logging.getLogger(__name__)
slog = get_structured_logger(__name__)

RETRYABLE_STATUSES = (LedgerStatus.PENDING.value, LedgerStatus.FAILED.value)


class LinkHarvestStage:
    """Run Stage 2 over one Stage 1 request."""

    def __init__(self, config: HarvesterConfig, registry: ProviderRegistry, renderer: Optional[PageRenderer] = None):
        """
        Initialize the stage.

        Args:
            config: Loaded configuration
            registry: Provider registry used to resolve source URLs
            renderer: Renderer whose per-thread resources are released by workers
        """
        self.config = config
        self.registry = registry
        self.renderer = renderer
        self._stats: Dict[str, Any] = {}
        self._stats_lock = threading.Lock()

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] = self._stats.get(key, 0) + amount

    def run(
        self,
        upstream_run_id: Optional[str] = None,
        run_id: Optional[str] = None,
        clean: bool = False,
        force: bool = False,
    ) -> Dict[str, Any]:
        """
        Harvest job links from the source pages of a Stage 1 run.

        Args:
            upstream_run_id: Stage 1 request id; latest run when omitted
            run_id: Stage 2 job id; generated when omitted
            clean: Reset this run's report and reprocess every source page
            force: Reprocess source pages already marked done

        Returns:
            Run statistics including ``run_id``.

        Raises:
            ConfigurationError: The upstream run cannot be resolved.
        """
        output_dir = self.config.output.dir
        upstream_id = resolve_upstream_run(output_dir, SEARCH_DIR, upstream_run_id)
        upstream = Ledger(search_run(output_dir, upstream_id).ledger_path, SEARCH_RESULT_COLUMNS)

        if not run_id:
            run_id = generate_run_id()
            logger.info(f"No ID provided. Generated job ID: {run_id}")

        paths = links_run(output_dir, run_id).ensure()
        store = ReportStore(paths.report_path, LinkReport)
        ledger = Ledger(paths.ledger_path, JOB_COLUMNS)
        ledger.ensure()

        if clean:
            logger.info(f"Clean flag detected. Resetting progress for job ID {run_id}")
            store.reset()

        rows = upstream.read()
        if clean or force:
            todo = [row["URL"] for row in rows]
        else:
            todo = [row["URL"] for row in rows if row["STATUS"] in RETRYABLE_STATUSES]

        self._stats = {
            "run_id": run_id,
            "upstream_run_id": upstream_id,
            "source_pages": len(todo),
            "pages_succeeded": 0,
            "pages_failed": 0,
            "links_found": 0,
            "new_links": 0,
            "duplicates_skipped": 0,
        }
        slog.stage(2, "started", {"run": run_id, "upstream": upstream_id, "pages": len(todo)})

        if not todo:
            logger.info("No pending source pages to process")
            slog.stage(2, "completed", {"run": run_id})
            return dict(self._stats)

        seen = DuplicationCache(ledger.urls())
        run_workers(
            WorkQueue(todo),
            lambda url: self.process_url(url, upstream, ledger, store, seen),
            self.config.crawler.concurrency,
            on_thread_exit=self.renderer.release_thread if self.renderer else None,
        )

        slog.summary(
            f"Stage 2 complete: job ID {run_id}",
            {
                "Source pages": self._stats["source_pages"],
                "Succeeded": self._stats["pages_succeeded"],
                "Failed": self._stats["pages_failed"],
                "Total links found": self._stats["links_found"],
                "New": self._stats["new_links"],
                "Duplicates skipped": self._stats["duplicates_skipped"],
            },
        )
        slog.stage(2, "completed", {"run": run_id})
        return dict(self._stats)

    def process_url(
        self,
        url: str,
        upstream: Ledger,
        ledger: Ledger,
        store: ReportStore,
        seen: DuplicationCache,
    ) -> None:
        """Collect links for one source page and record the outcome."""
        provider = self.registry.resolve(url)
        report_key = normalize_url(url)
        slog.url_activity(url, "COLLECT", {"provider": provider.provider_id})

        try:
            collection = provider.collect_links(url)
        except Exception as e:
            logger.error(f"Failed to collect links from {url}: {e}", exc_info=not isinstance(e, ProviderApiError))
            diagnostics = e.diagnostics if isinstance(e, ProviderApiError) else {}
            with store.update() as report:
                report.link_extraction_report[report_key] = LinkReportEntry(
                    status=False,
                    links_found=0,
                    error=str(e),
                    diagnostics=diagnostics,
                    provider=provider.provider_id,
                )
            upstream.update_row(url, {"STATUS": LedgerStatus.FAILED.value, "JOB_COUNT": 0})
            self._bump("pages_failed")
            slog.url_activity(url, "FAILED", {"error": str(e)})
            return

        job_urls = [self.registry.normalize(job_url) for job_url in collection.job_urls]
        job_metadata = {
            self.registry.normalize(job_url): metadata for job_url, metadata in collection.job_metadata.items()
        }
        new_urls = seen.filter_new(job_urls)
        self._bump("duplicates_skipped", len(job_urls) - len(new_urls))

        new_rows = []
        for job_url in new_urls:
            metadata = job_metadata.get(job_url)
            new_rows.append(
                {
                    "URL": job_url,
                    "PROVIDER": collection.provider_id,
                    "STATUS": LedgerStatus.PENDING.value,
                    "REMARKS": json.dumps(metadata) if metadata else "",
                    "OUTPUT_LOCATION": "",
                    "DETAIL_STRATEGY": "",
                    "RETRY_COUNT": "0",
                }
            )
        added = ledger.append(new_rows)

        with store.update() as report:
            report.link_extraction_report[report_key] = LinkReportEntry(
                status=True,
                links_found=len(collection.job_urls),
                diagnostics=collection.diagnostics,
                provider=collection.provider_id,
                api=collection.api,
                job_metadata=job_metadata,
            )
        upstream.update_row(url, {"STATUS": LedgerStatus.DONE.value, "JOB_COUNT": len(collection.job_urls)})

        self._bump("pages_succeeded")
        self._bump("links_found", len(collection.job_urls))
        self._bump("new_links", added)
        slog.url_activity(url, "DONE", {"links": len(collection.job_urls), "new": added})

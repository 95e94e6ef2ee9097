"""
Stage 3: job detail extraction.

Consumes the pending/failed rows of a Stage 2 ``jobs.csv``. Each URL goes
through the layered extractor; accepted records are written to
``<company>/<n>.txt`` and the row is marked done. Rejections mark the row
failed with the reason and bump its retry count.

Pages that turn out to be listings are expanded one level: their job
links are appended to the ledger and queued as new work, bounded by a
depth counter and a link cap.
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from job_harvester.browser import PageRenderer
from job_harvester.config import HarvesterConfig
from job_harvester.exceptions import ContentValidationError, ProviderApiError
from job_harvester.extractors.pipeline import DetailExtractor, ExtractionOutcome
from job_harvester.logging_config import format_title, get_structured_logger
from job_harvester.models import (
    DetailReport,
    DetailStrategy,
    DetailUrlEntry,
    LedgerStatus,
    LinkReport,
    ProviderContext,
)
from job_harvester.providers.base import JobBoardProvider, parse_remarks
from job_harvester.providers.registry import ProviderRegistry
from job_harvester.stages.workers import WorkQueue, run_workers
from job_harvester.storage.checkpoint import ReportStore, load_report
from job_harvester.storage.job_storage import JobStorage
from job_harvester.storage.ledger import JOB_COLUMNS, Ledger, Row
from job_harvester.storage.runs import LINKS_DIR, generate_run_id, jobs_run, links_run, resolve_upstream_run
from job_harvester.utils.dedup_cache import DuplicationCache
from job_harvester.utils.retry import RetryPolicy
from job_harvester.utils.url_utils import company_key

logger = logging.getLogger(__name__)
slog = get_structured_logger(__name__)

RETRYABLE_STATUSES = (LedgerStatus.PENDING.value, LedgerStatus.FAILED.value)


@dataclass
class DetailTask:
    """One URL to extract, with its ledger row and expansion depth."""

    row: Row
    depth: int = 0
    found_from: Optional[str] = None

    @property
    def url(self) -> str:
        return self.row["URL"]


def merge_error_into_remarks(remarks: str, reason: str) -> str:
    """
    Attach a failure reason to a REMARKS cell.

    JSON metadata is kept and gains an ``error`` key; plain-text remarks
    are replaced by the reason.
    """
    metadata = parse_remarks(remarks)
    if metadata:
        return json.dumps({**metadata, "error": reason})
    return reason


def clear_error_from_remarks(remarks: str) -> str:
    """Drop a previous failure reason from a REMARKS cell, keeping JSON metadata."""
    metadata = parse_remarks(remarks)
    metadata.pop("error", None)
    return json.dumps(metadata) if metadata else ""


class DetailStage:
    """Run Stage 3 over one Stage 2 job run."""

    def __init__(
        self,
        config: HarvesterConfig,
        registry: ProviderRegistry,
        renderer: PageRenderer,
        extractor: Optional[DetailExtractor] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the stage.

        Args:
            config: Loaded configuration
            registry: Provider registry
            renderer: Page renderer used by the extraction layers
            extractor: Layered extractor; built from ``renderer`` when omitted
            retry_policy: Per-URL retry policy for transient failures
        """
        self.config = config
        self.registry = registry
        self.renderer = renderer
        self.extractor = extractor or DetailExtractor(renderer, config.selectors.job_links)
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.retry.max_retries,
            retry_delay=config.retry.retry_delay,
            exponential=True,
        )
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
        Extract job details for the links of a Stage 2 run.

        Args:
            upstream_run_id: Stage 2 job id; latest run when omitted
            run_id: Stage 3 extraction id; generated when omitted
            clean: Reset this run's report and reprocess every row
            force: Reprocess rows already marked done

        Returns:
            Run statistics including ``run_id``.

        Raises:
            ConfigurationError: The upstream run cannot be resolved.
        """
        output_dir = self.config.output.dir
        upstream_id = resolve_upstream_run(output_dir, LINKS_DIR, upstream_run_id)
        upstream_paths = links_run(output_dir, upstream_id)
        ledger = Ledger(upstream_paths.ledger_path, JOB_COLUMNS)
        link_report = load_report(upstream_paths.report_path, LinkReport)

        if not run_id:
            run_id = generate_run_id()
            logger.info(f"No ID provided. Generated extraction ID: {run_id}")

        paths = jobs_run(output_dir, run_id).ensure()
        store = ReportStore(paths.report_path, DetailReport)
        storage = JobStorage(paths.directory, self.config.output.format)

        if clean:
            logger.info(f"Clean flag detected. Resetting progress for extraction ID {run_id}")
            store.reset()

        rows = ledger.read()
        if clean or force:
            todo = rows
        else:
            todo = [row for row in rows if row["STATUS"] in RETRYABLE_STATUSES]

        self._stats = {
            "run_id": run_id,
            "upstream_run_id": upstream_id,
            "queued": len(todo),
            "succeeded": 0,
            "failed": 0,
            "listings_expanded": 0,
            "links_followed": 0,
        }
        slog.stage(3, "started", {"run": run_id, "upstream": upstream_id, "urls": len(todo)})

        if not todo:
            logger.info("No pending job URLs to process")
            slog.stage(3, "completed", {"run": run_id})
            return dict(self._stats)

        seen = DuplicationCache(row["URL"] for row in rows)
        work: WorkQueue[DetailTask] = WorkQueue(DetailTask(row) for row in todo)
        run_workers(
            work,
            lambda task: self.process_task(task, work, ledger, store, storage, link_report, seen),
            self.config.crawler.concurrency,
            on_thread_exit=self.renderer.release_thread,
        )

        summary = {
            "Queued": self._stats["queued"],
            "Successful": self._stats["succeeded"],
            "Failed": self._stats["failed"],
            "Listing pages expanded": self._stats["listings_expanded"],
        }
        for strategy in DetailStrategy:
            count = self._stats.get(f"strategy:{strategy.value}")
            if count:
                summary[strategy.value] = count
        slog.summary(f"Stage 3 complete: extraction ID {run_id}", summary)
        slog.stage(3, "completed", {"run": run_id})
        return dict(self._stats)

    def _provider_for(self, task: DetailTask) -> Optional[JobBoardProvider]:
        provider = self.registry.find(task.url) or self.registry.get(task.row.get("PROVIDER"))
        if provider is not None and provider.supports_detail:
            return provider
        return None

    def _prepare_context(
        self, provider: JobBoardProvider, task: DetailTask, link_report: LinkReport, store: ReportStore
    ) -> Optional[ProviderContext]:
        try:
            return provider.prepare_context(
                task.url,
                remarks=parse_remarks(task.row.get("REMARKS")),
                link_report=link_report,
                detail_report=store.report,
            )
        except Exception as e:
            logger.warning(f"Provider {provider.provider_id} could not prepare context for {task.url}: {e}")
            return None

    def process_task(
        self,
        task: DetailTask,
        work: WorkQueue,
        ledger: Ledger,
        store: ReportStore,
        storage: JobStorage,
        link_report: LinkReport,
        seen: DuplicationCache,
    ) -> None:
        """Extract one URL end-to-end and record the outcome."""
        url = task.url
        provider = self._provider_for(task)
        provider_id = provider.provider_id if provider else (task.row.get("PROVIDER") or "generic")
        context = self._prepare_context(provider, task, link_report, store) if provider else None
        slog.url_activity(url, "EXTRACT", {"provider": provider_id, "depth": task.depth})

        try:
            outcome = self.retry_policy.call(
                lambda: self.extractor.extract(url, provider, context),
                description=url,
            )
        except ContentValidationError as e:
            self._record_failure(task, provider_id, str(e), {}, ledger, store)
            return
        except Exception as e:
            diagnostics = e.diagnostics if isinstance(e, ProviderApiError) else {}
            logger.error(f"Extraction failed for {url}: {e}", exc_info=not isinstance(e, ProviderApiError))
            self._record_failure(task, provider_id, str(e), diagnostics, ledger, store)
            return

        if outcome.is_listing:
            self._expand_listing(task, provider_id, outcome, work, ledger, store, seen)
            return

        record = outcome.record
        company = company_key(url)
        location = storage.save(record, company)
        ledger.update_row(
            url,
            {
                "STATUS": LedgerStatus.DONE.value,
                "REMARKS": clear_error_from_remarks(task.row.get("REMARKS", "")),
                "OUTPUT_LOCATION": location,
                "DETAIL_STRATEGY": record.source_strategy,
            },
        )
        with store.update() as report:
            report.company(company).record_passed(
                DetailUrlEntry(
                    url=url,
                    provider=provider_id,
                    found_from=task.found_from,
                    strategy=record.source_strategy,
                    diagnostics=outcome.diagnostics or None,
                )
            )
        self._bump("succeeded")
        self._bump(f"strategy:{record.source_strategy}")
        logger.info(f"Saved: {location} - \"{format_title(record.title)}\"")

    def _record_failure(
        self,
        task: DetailTask,
        provider_id: str,
        reason: str,
        diagnostics: Dict[str, Any],
        ledger: Ledger,
        store: ReportStore,
    ) -> None:
        url = task.url
        try:
            retry_count = int(task.row.get("RETRY_COUNT") or 0) + 1
        except ValueError:
            retry_count = 1
        ledger.update_row(
            url,
            {
                "STATUS": LedgerStatus.FAILED.value,
                "REMARKS": merge_error_into_remarks(task.row.get("REMARKS", ""), reason),
                "OUTPUT_LOCATION": "",
                "RETRY_COUNT": retry_count,
            },
        )
        with store.update() as report:
            report.company(company_key(url)).record_failed(
                DetailUrlEntry(
                    url=url,
                    provider=provider_id,
                    found_from=task.found_from,
                    reason=reason,
                    diagnostics=diagnostics or None,
                )
            )
        self._bump("failed")
        slog.url_activity(url, "FAILED", {"reason": reason})

    def _expand_listing(
        self,
        task: DetailTask,
        provider_id: str,
        outcome: ExtractionOutcome,
        work: WorkQueue,
        ledger: Ledger,
        store: ReportStore,
        seen: DuplicationCache,
    ) -> None:
        max_depth = self.config.extraction.listing_depth
        links = outcome.listing_links
        if task.depth >= max_depth:
            reasons = outcome.reasons + [
                f"Listing page with {len(links)} job links (expansion depth {max_depth} reached)"
            ]
            self._record_failure(task, provider_id, str(ContentValidationError(reasons)), outcome.diagnostics, ledger, store)
            return

        cap = self.config.extraction.listing_link_cap
        children = []
        for link in links[:cap]:
            if not seen.add(link):
                continue
            child_provider = self.registry.resolve(link)
            children.append(
                {
                    "URL": link,
                    "PROVIDER": child_provider.provider_id,
                    "STATUS": LedgerStatus.PENDING.value,
                    "REMARKS": json.dumps({"foundFrom": task.url}),
                    "OUTPUT_LOCATION": "",
                    "DETAIL_STRATEGY": "",
                    "RETRY_COUNT": "0",
                }
            )
        ledger.append(children)
        for row in children:
            work.put(DetailTask(row, depth=task.depth + 1, found_from=task.url))

        ledger.update_row(
            task.url,
            {
                "STATUS": LedgerStatus.DONE.value,
                "OUTPUT_LOCATION": "",
                "DETAIL_STRATEGY": DetailStrategy.LISTING_EXPANSION.value,
            },
        )
        with store.update() as report:
            report.company(company_key(task.url)).record_passed(
                DetailUrlEntry(
                    url=task.url,
                    provider=provider_id,
                    found_from=task.found_from,
                    strategy=DetailStrategy.LISTING_EXPANSION.value,
                    diagnostics={**outcome.diagnostics, "linksFollowed": len(children)},
                )
            )
        self._bump("listings_expanded")
        self._bump("links_followed", len(children))
        logger.info(f"Expanded listing {task.url}: following {len(children)} of {len(links)} job links")

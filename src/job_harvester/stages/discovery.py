"""
Stage 1: search discovery.

Pages of search results are fetched strictly in order and checkpointed
one by one. A failed page is not retried in-process; the next invocation
resumes at it and counts the attempt against the page's retry budget.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from job_harvester.config import HarvesterConfig
from job_harvester.exceptions import TerminalProviderError
from job_harvester.logging_config import get_structured_logger
from job_harvester.models import ErrorDetail, LedgerStatus, PageRecord, SearchReport, SearchResult
from job_harvester.search.base import SearchProvider
from job_harvester.storage.checkpoint import ReportStore
from job_harvester.storage.ledger import SEARCH_RESULT_COLUMNS, Ledger
from job_harvester.storage.runs import generate_run_id, search_run
from job_harvester.utils.dedup_cache import DuplicationCache

logger = logging.getLogger(__name__)
slog = get_structured_logger(__name__)


def find_start_page(pages: List[PageRecord], max_pages: int) -> Optional[int]:
    """
    Decide where a run resumes.

    Args:
        pages: Page records from the report
        max_pages: Page budget for this run

    Returns:
        The first unsettled page, else one past the highest settled page,
        else 1. None when every page up to ``max_pages`` is settled.
    """
    unsettled = [p.page for p in pages if not p.status]
    if unsettled:
        return min(unsettled)
    if pages:
        last = max(p.page for p in pages)
        if last >= max_pages:
            return None
        return last + 1
    return 1


def error_detail(error: Exception) -> ErrorDetail:
    """Describe a page failure, keeping HTTP status details when available."""
    response = getattr(error, "response", None)
    if isinstance(response, requests.Response):
        try:
            data: Any = response.json()
        except ValueError:
            data = response.text[:500]
        return ErrorDetail(
            message=str(error), status=response.status_code, status_text=response.reason, data=data
        )
    return ErrorDetail(message=str(error))


class DiscoveryStage:
    """Run Stage 1 for one search provider and query."""

    def __init__(self, config: HarvesterConfig, provider: SearchProvider):
        """
        Initialize the stage.

        Args:
            config: Loaded configuration
            provider: Search provider client
        """
        self.config = config
        self.provider = provider

    def _page_budget(self, pages: Optional[int]) -> int:
        requested = pages if pages and pages > 0 else self.config.crawler.max_pages
        provider_max = self.provider.max_pages
        if provider_max is not None and requested > provider_max:
            logger.warning(
                f"⚠️  Provider {self.provider.display_name} has a maximum of {provider_max} pages. "
                f"Limiting to {provider_max} pages."
            )
            return provider_max
        return requested

    def run(
        self,
        query: str,
        run_id: Optional[str] = None,
        pages: Optional[int] = None,
        clean: bool = False,
    ) -> Dict[str, Any]:
        """
        Fetch search result pages and record new URLs.

        Args:
            query: Search query
            run_id: Request identifier; generated when omitted
            pages: Page budget; defaults to ``crawler.max_pages``
            clean: Reset this provider's page progress first

        Returns:
            Run statistics including ``run_id`` and ``halted``.

        Raises:
            TerminalProviderError: The provider refused service.
        """
        if not run_id:
            run_id = generate_run_id()
            logger.info(f"No ID provided. Generated request ID: {run_id}")

        paths = search_run(self.config.output.dir, run_id).ensure()
        store = ReportStore(paths.report_path, SearchReport)
        ledger = Ledger(paths.ledger_path, SEARCH_RESULT_COLUMNS)
        ledger.ensure()

        provider_key = self.provider.name
        engine = self.provider.engine

        stats: Dict[str, Any] = {
            "run_id": run_id,
            "pages_fetched": 0,
            "total_found": 0,
            "new_urls": 0,
            "duplicates_skipped": 0,
            "halted": False,
        }

        slog.stage(1, "started", {"provider": self.provider.display_name, "run": run_id, "query": query})

        if clean:
            logger.info(f"Clean flag detected. Resetting progress for request ID {run_id}")
            with store.update() as report:
                pages_list = report.pages_for(provider_key, engine)
                pages_list.clear()

        max_pages = self._page_budget(pages)
        start_page = find_start_page(store.report.pages_for(provider_key, engine), max_pages)
        if start_page is None:
            logger.info(f"All pages already completed for request ID {run_id}. Use --clean to start fresh.")
            slog.stage(1, "completed", {"run": run_id, "pages": 0})
            return stats
        if start_page > 1:
            logger.info(f"Resuming from page {start_page}")

        seen = DuplicationCache(ledger.urls())

        for page in range(start_page, max_pages + 1):
            with store.update() as report:
                record = next((p for p in report.pages_for(provider_key, engine) if p.page == page), None)
                if record is None:
                    record = PageRecord(page=page)
                    report.pages_for(provider_key, engine).append(record)
                elif record.retry_count >= self.config.retry.max_retry_count:
                    message = (record.error.message or record.error.status_text) if record.error else None
                    logger.error(f"Max retry limit ({self.config.retry.max_retry_count}) reached for page {page}.")
                    logger.error(f"Error: {message or 'Unknown error'}")
                    logger.error("Review the full error in report.json, or rerun with --clean.")
                    stats["halted"] = True
                    slog.stage(1, "halted", {"run": run_id, "page": page})
                    return stats
                elif not record.status:
                    record.retry_count += 1

            slog.page(page, "fetching", {"of": max_pages})
            try:
                results = self.provider.search(query, page)
            except TerminalProviderError as e:
                with store.update() as report:
                    record.status = False
                    record.error = ErrorDetail(message=str(e))
                    if record.retry_count > 0:
                        record.retry_count -= 1
                slog.stage(1, "failed", {"run": run_id, "page": page, "error": str(e)})
                raise
            except Exception as e:
                logger.error(f"Failed to fetch page {page}: {e}")
                with store.update() as report:
                    record.status = False
                    record.error = error_detail(e)
                slog.page(page, "failed", {"retryCount": record.retry_count})
                continue

            stats["pages_fetched"] += 1
            if not results:
                logger.info("No more results found, stopping pagination")
                with store.update() as report:
                    record.status = True
                    record.error = None
                slog.page(page, "empty")
                break

            added = self._record_results(results, seen, ledger, stats)
            with store.update() as report:
                record.status = True
                record.error = None
            slog.page(page, "settled", {"results": len(results), "new": added})

        summary = {
            "Total found": stats["total_found"],
            "New": stats["new_urls"],
            "Duplicates skipped": stats["duplicates_skipped"],
        }
        slog.summary(f"Stage 1 complete: request {run_id}", summary)
        slog.stage(1, "completed", {"run": run_id})
        return stats

    @staticmethod
    def _record_results(
        results: List[SearchResult], seen: DuplicationCache, ledger: Ledger, stats: Dict[str, Any]
    ) -> int:
        rows = []
        for result in results:
            stats["total_found"] += 1
            if not seen.add(result.url):
                stats["duplicates_skipped"] += 1
                continue
            rows.append(
                {
                    "URL": result.url,
                    "STATUS": LedgerStatus.PENDING.value,
                    "JOB_COUNT": "0",
                    "SNIPPET": result.snippet,
                    "LOGO_URL": result.logo_url,
                    "REMARKS": "",
                }
            )
        added = ledger.append(rows)
        stats["new_urls"] += added
        return added

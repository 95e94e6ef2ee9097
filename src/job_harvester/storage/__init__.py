"""Checkpoint reports, row ledgers, run layout and job record storage."""

from job_harvester.storage.checkpoint import ReportStore, load_report, save_report
from job_harvester.storage.job_storage import JobStorage, format_job_text
from job_harvester.storage.ledger import JOB_COLUMNS, SEARCH_RESULT_COLUMNS, Ledger

__all__ = [
    "JOB_COLUMNS",
    "SEARCH_RESULT_COLUMNS",
    "JobStorage",
    "Ledger",
    "ReportStore",
    "format_job_text",
    "load_report",
    "save_report",
]

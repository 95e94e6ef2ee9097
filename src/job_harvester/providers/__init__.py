"""Job-board providers: Greenhouse and Lever APIs plus a generic browser fallback."""

from job_harvester.providers.base import DetailResult, JobBoardProvider, LinkCollection, parse_remarks
from job_harvester.providers.generic import GenericProvider
from job_harvester.providers.greenhouse import GreenhouseProvider
from job_harvester.providers.lever import LeverProvider
from job_harvester.providers.registry import ProviderRegistry, build_registry
from job_harvester.providers.token_cache import TokenCache

__all__ = [
    "DetailResult",
    "GenericProvider",
    "GreenhouseProvider",
    "JobBoardProvider",
    "LeverProvider",
    "LinkCollection",
    "ProviderRegistry",
    "TokenCache",
    "build_registry",
    "parse_remarks",
]

"""Stage engines: search discovery, link harvesting and detail extraction."""

from job_harvester.stages.details import DetailStage
from job_harvester.stages.discovery import DiscoveryStage
from job_harvester.stages.harvester import LinkHarvestStage

__all__ = ["DetailStage", "DiscoveryStage", "LinkHarvestStage"]

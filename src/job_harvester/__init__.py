"""Resumable three-stage job posting harvester."""

__version__ = "1.0.0"

"""Detail extraction layers and the validation gate."""

from job_harvester.extractors.dom_analysis import analyze_dom
from job_harvester.extractors.pipeline import DetailExtractor, ExtractionOutcome
from job_harvester.extractors.structured_data import extract_structured_data
from job_harvester.extractors.validation import ValidationResult, validate_record

__all__ = [
    "DetailExtractor",
    "ExtractionOutcome",
    "ValidationResult",
    "analyze_dom",
    "extract_structured_data",
    "validate_record",
]

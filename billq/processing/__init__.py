"""Processing - caller-facing operations of the activity pipeline"""

from billq.processing.service import IngestResult, ProcessingService

__all__ = ["IngestResult", "ProcessingService"]

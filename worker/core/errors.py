"""Failure types raised inside a worker run."""


class WorkerError(Exception):
    """Base class for failures that end a run."""


class ReportNotFound(WorkerError):
    def __init__(self, report_id: str) -> None:
        super().__init__(f"Report not found: {report_id}")
        self.report_id = report_id


class UnknownReportType(WorkerError):
    def __init__(self, report_type: str) -> None:
        super().__init__(f"Unknown report type: {report_type}")
        self.report_type = report_type


class MissingInputError(WorkerError):
    """The report lacks an input its pipeline requires."""


class ExtractionError(WorkerError):
    """ffmpeg failed or produced no frames."""


class InvalidStorageUri(WorkerError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Invalid storage uri: {uri}")
        self.uri = uri


class FallbackExhausted(WorkerError):
    """Every strategy in a fallback chain declined without raising."""

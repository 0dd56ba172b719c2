"""
report.py - Pydantic schema for the report records the worker consumes.

The Report Store owns these records; the worker reads one per run and
writes back exactly one {result, status} patch.
"""

from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ReportType = Literal["audit", "deepfake"]
ReportStatus = Literal["pending", "completed", "failed"]

REPORT_STATUSES: tuple[str, ...] = ("pending", "completed", "failed")
# Reports in these states are never processed again
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class Report(BaseModel):
    """A report as returned by GET /reports/{id}."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    # Kept as a plain string so unknown types reach dispatch and fail there
    type: str
    file_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("fileUrl", "file_url")
    )
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: str = "pending"
    result: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", "result", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # The store keeps these as free-form documents that may be null
        return {} if value is None else value

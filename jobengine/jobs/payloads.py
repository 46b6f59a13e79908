"""Input schemas per job type.

The engine stores input as a plain dict, but every enqueue is validated
against the model registered for its type so handlers receive a known
shape.
"""

from typing import Any, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from jobengine.jobs.errors import InvalidJobInputError
from jobengine.jobs.types import JobType


class JobInput(BaseModel):
    """Base for job inputs. Unknown keys are kept for handler-specific use."""

    model_config = ConfigDict(extra="allow")


class ImportInput(JobInput):
    """Bulk import of records."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    source_path: Optional[str] = Field(
        default=None, description="Uploaded CSV/JSON file to read items from"
    )
    dry_run: bool = False
    skip_duplicates: bool = True
    notify_on_complete: bool = True


class StatusUpdateInput(JobInput):
    """Reconcile the status of a set of records."""

    record_ids: list[str] = Field(..., min_length=1)
    target_status: str = Field(..., min_length=1)
    reason: Optional[str] = None


class VerificationInput(JobInput):
    """Verify submitted documents."""

    document_ids: list[str] = Field(..., min_length=1)
    strict: bool = False


class ExportInput(JobInput):
    """Export records to a file."""

    format: Literal["csv", "json"] = "csv"
    filters: dict[str, Any] = Field(default_factory=dict)
    fields: Optional[list[str]] = None


class CleanupInput(JobInput):
    """Remove stale records."""

    older_than_days: int = Field(default=30, ge=1)
    dry_run: bool = False


INPUT_MODELS: dict[JobType, Type[JobInput]] = {
    JobType.IMPORT: ImportInput,
    JobType.STATUS_UPDATE: StatusUpdateInput,
    JobType.VERIFICATION: VerificationInput,
    JobType.EXPORT: ExportInput,
    JobType.CLEANUP: CleanupInput,
}


def validate_input(job_type: JobType, data: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Validate and normalize input for job_type.

    Raises:
        InvalidJobInputError: data does not match the type's schema
    """
    model = INPUT_MODELS[JobType(job_type)]
    try:
        parsed = model.model_validate(data or {})
    except ValidationError as e:
        raise InvalidJobInputError(
            JobType(job_type),
            [
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ],
        ) from e
    return parsed.model_dump(mode="json")


def parse_input(job_type: JobType, data: dict[str, Any]) -> JobInput:
    """Typed view of a stored input dict, for handlers."""
    return INPUT_MODELS[JobType(job_type)].model_validate(data)

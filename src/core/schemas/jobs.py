"""Job payload, result and queue-side record for document extraction jobs."""

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobState(str, enum.Enum):
    waiting = "waiting"
    active = "active"
    delayed = "delayed"
    completed = "completed"
    failed = "failed"


class ProcessingStep(str, enum.Enum):
    file_read = "file_read"
    text_extract = "text_extract"
    vendor_detect = "vendor_detect"
    template_load = "template_load"
    ai_extract = "ai_extract"
    validation = "validation"
    db_update = "db_update"


STEP_PROGRESS: dict[ProcessingStep, tuple[int, str]] = {
    ProcessingStep.file_read: (10, "Reading document file..."),
    ProcessingStep.text_extract: (25, "Extracting text from document..."),
    ProcessingStep.vendor_detect: (40, "Detecting vendor..."),
    ProcessingStep.template_load: (50, "Loading vendor template..."),
    ProcessingStep.ai_extract: (75, "Extracting data with AI..."),
    ProcessingStep.validation: (90, "Validating extracted data..."),
    ProcessingStep.db_update: (100, "Saving to database..."),
}


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class JobPayload(_WireModel):
    document_id: str
    user_id: str
    vendor_id_override: str | None = None
    attempt: int = 1


class JobResult(_WireModel):
    success: bool
    document_id: str
    extracted_data: dict[str, Any] | None = None
    error: str | None = None


class JobProgress(_WireModel):
    step: ProcessingStep
    percentage: int
    message: str | None = None


class JobRecord(_WireModel):
    id: str
    name: str = "process-document"
    payload: JobPayload
    state: JobState = JobState.waiting
    attempts_made: int = 0
    max_attempts: int = 3
    progress: JobProgress | None = None
    created_at: datetime
    processed_on: datetime | None = None
    finished_on: datetime | None = None
    failed_reason: str | None = None
    result: JobResult | None = None

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.completed, JobState.failed)


class JobStatus(_WireModel):
    status: str  # a JobState value, or "not_found"
    job: JobRecord | None = None


class JobSubmission(_WireModel):
    job_id: str
    document_id: str
    created: bool = Field(
        default=True, description="False when an active job already existed for the document"
    )

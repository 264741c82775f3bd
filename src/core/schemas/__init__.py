from src.core.schemas.extraction import ExtractedInvoice, LineItemData
from src.core.schemas.jobs import JobPayload, JobRecord, JobResult, JobState, JobStatus
from src.core.schemas.template import (
    BooleanField,
    CustomField,
    DateField,
    NumberField,
    StringField,
    TemplateSpec,
    ValidationRule,
)

__all__ = [
    "BooleanField",
    "CustomField",
    "DateField",
    "ExtractedInvoice",
    "JobPayload",
    "JobRecord",
    "JobResult",
    "JobState",
    "JobStatus",
    "LineItemData",
    "NumberField",
    "StringField",
    "TemplateSpec",
    "ValidationRule",
]

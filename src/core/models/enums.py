import enum


class DocumentStatus(str, enum.Enum):
    pending = "pending"
    queued = "queued"
    processing = "processing"
    processed = "processed"
    validation_failed = "validation_failed"
    failed = "failed"


FAILURE_STATUSES = frozenset({DocumentStatus.failed, DocumentStatus.validation_failed})
ACTIVE_STATUSES = frozenset({DocumentStatus.queued, DocumentStatus.processing})


class RequestStatus(str, enum.Enum):
    draft = "draft"
    processing = "processing"
    completed = "completed"
    partial = "partial"
    failed = "failed"


TERMINAL_REQUEST_STATUSES = frozenset(
    {RequestStatus.completed, RequestStatus.partial, RequestStatus.failed}
)


class CustomFieldType(str, enum.Enum):
    string = "string"
    number = "number"
    boolean = "boolean"
    date = "date"


class ValidationRuleKind(str, enum.Enum):
    min = "min"
    max = "max"
    pattern = "pattern"
    required = "required"
    length = "length"


class AuditSeverity(str, enum.Enum):
    info = "info"
    warning = "warning"
    error = "error"

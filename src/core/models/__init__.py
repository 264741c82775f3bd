from src.core.models.ai_model_config import AIModelConfig
from src.core.models.audit import AuditLog
from src.core.models.base import Base
from src.core.models.document import Document, LineItem
from src.core.models.enums import (
    AuditSeverity,
    CustomFieldType,
    DocumentStatus,
    RequestStatus,
    ValidationRuleKind,
)
from src.core.models.request import UploadRequest
from src.core.models.vendor import Vendor, VendorTemplate

__all__ = [
    "AIModelConfig",
    "AuditLog",
    "AuditSeverity",
    "Base",
    "CustomFieldType",
    "Document",
    "DocumentStatus",
    "LineItem",
    "RequestStatus",
    "UploadRequest",
    "ValidationRuleKind",
    "Vendor",
    "VendorTemplate",
]

"""Pick the extraction model: vendor override, then user default, then settings."""

import logging
from dataclasses import dataclass
from typing import Any

from src.core.config import settings
from src.core.llm.providers import ExtractionProvider, create_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSelection:
    provider: str
    model: str
    temperature: float
    max_tokens: int | None = None
    source: str = "default"  # vendor | user | default


def default_selection() -> ModelSelection:
    return ModelSelection(
        provider=settings.extraction_provider,
        model=settings.extraction_model,
        temperature=settings.extraction_temperature,
        max_tokens=settings.extraction_max_tokens,
    )


def _from_config(config: Any, source: str) -> ModelSelection:
    return ModelSelection(
        provider=config.provider,
        model=config.model,
        temperature=float(config.temperature if config.temperature is not None else 0.1),
        max_tokens=config.max_tokens or settings.extraction_max_tokens,
        source=source,
    )


def select_model(vendor_config: Any = None, user_config: Any = None) -> ModelSelection:
    """Resolve the effective model from optional AIModelConfig rows.

    Inactive configs are skipped.
    """
    if vendor_config is not None and vendor_config.is_active:
        return _from_config(vendor_config, "vendor")
    if user_config is not None and user_config.is_active:
        return _from_config(user_config, "user")
    return default_selection()


def build_provider(selection: ModelSelection) -> ExtractionProvider:
    """Instantiate the provider; raises ConfigurationError without an API key."""
    logger.debug(
        "Using %s/%s (%s config)", selection.provider, selection.model, selection.source
    )
    return create_provider(
        selection.provider,
        selection.model,
        settings.provider_api_key(selection.provider),
        temperature=selection.temperature,
        max_tokens=selection.max_tokens,
    )

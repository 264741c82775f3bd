"""Prompt compilation and structured extraction through a provider."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from src.core.exceptions import ExtractionSchemaError
from src.core.extraction.schema_builder import ExtractionSchema
from src.core.llm.providers import ExtractionProvider, TokenUsage
from src.core.observability import observe

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are an expert invoice/receipt data extraction system. \
Extract the following information from the provided document:

1. Invoice/Receipt Number
2. Date (ISO 8601 format: YYYY-MM-DD)
3. Line Items (array of objects with: description, quantity, unitPrice, amount)
4. Total Amount (as a number, no currency symbols)
5. Currency (3-letter code like USD, EUR, etc.)

Return ONLY valid JSON in this exact format:
{
  "invoiceNumber": "string or null",
  "date": "YYYY-MM-DD or null",
  "totalAmount": number or null,
  "currency": "string or null",
  "lineItems": [
    {
      "description": "string",
      "quantity": number or null,
      "unitPrice": number or null,
      "amount": number or null
    }
  ]
}

Rules:
- If a field is not found, use null
- Parse all amounts as numbers (no currency symbols or commas)
- Ensure dates are in YYYY-MM-DD format
- Include all line items found in the document
- The lineItems array can be empty if no line items are found
- Be accurate and extract exactly what you see in the document"""

USER_PROMPT = "Extract data from this invoice/receipt:\n\n{text}"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def build_system_prompt(schema: ExtractionSchema) -> str:
    if not schema.instructions:
        return EXTRACTION_PROMPT
    return f"{EXTRACTION_PROMPT}\n\n{schema.instructions}"


def parse_json_response(content: str) -> Any:
    """Parse model output, tolerating code fences and prose around the object."""
    cleaned = _FENCE_RE.sub("", content.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            pass
    raise ExtractionSchemaError(
        "Model returned invalid JSON", ["response is not a JSON object"], raw_response=content
    )


@dataclass
class ExtractionOutcome:
    record: dict[str, Any]
    raw_response: str
    provider: str
    model: str
    usage: TokenUsage | None = None

    @property
    def is_meaningfully_empty(self) -> bool:
        return not (
            self.record.get("invoiceNumber")
            or self.record.get("date")
            or self.record.get("totalAmount")
            or self.record.get("lineItems")
        )


class ExtractionClient:
    def __init__(self, provider: ExtractionProvider):
        self.provider = provider

    @observe(name="extract_document")
    async def extract(self, text: str, schema: ExtractionSchema) -> ExtractionOutcome:
        """Run one extraction call and validate the answer against ``schema``.

        Raises ProviderError for SDK/network failures and ExtractionSchemaError
        when the answer is not JSON or does not fit the schema.
        """
        response = await self.provider.complete_json(
            build_system_prompt(schema), USER_PROMPT.format(text=text)
        )
        data = parse_json_response(response.content)
        try:
            record = schema.validate(data)
        except ExtractionSchemaError as e:
            e.raw_response = response.content
            raise

        if response.usage:
            logger.info(
                "Extraction via %s/%s used %d tokens",
                self.provider.name,
                response.model,
                response.usage.total_tokens,
            )
        return ExtractionOutcome(
            record=record,
            raw_response=response.content,
            provider=self.provider.name,
            model=response.model,
            usage=response.usage,
        )

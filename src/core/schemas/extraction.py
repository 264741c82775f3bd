"""Baseline extraction record returned by the model (camelCase on the wire)."""

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

STANDARD_FIELDS = ("invoiceNumber", "date", "totalAmount", "currency", "lineItems")


def parse_iso_date(value: str) -> str:
    """Normalize an ISO-8601 date or datetime string to YYYY-MM-DD."""
    value = value.strip()
    try:
        return datetime.fromisoformat(value).date().isoformat()
    except ValueError:
        return date.fromisoformat(value[:10]).isoformat()


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class LineItemData(_CamelModel):
    description: str = ""
    quantity: float | None = None
    unit_price: float | None = None
    amount: float | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v


class ExtractedInvoice(_CamelModel):
    invoice_number: str | None = None
    invoice_date: str | None = Field(default=None, alias="date")
    total_amount: float | None = None
    currency: str | None = None
    line_items: list[LineItemData] = []

    @field_validator("invoice_number", mode="before")
    @classmethod
    def _number_to_str(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("invoice_date")
    @classmethod
    def _iso_date(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return parse_iso_date(v)

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        code = v.strip().upper()
        if not CURRENCY_RE.match(code):
            raise ValueError(f"currency must be a 3-letter code, got {v!r}")
        return code

    @field_validator("line_items", mode="before")
    @classmethod
    def _null_items(cls, v):
        return [] if v is None else v

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)

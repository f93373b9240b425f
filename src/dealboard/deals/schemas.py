"""Pydantic schemas for deals and prospects.

Defines all structured types for the deal lifecycle:
- Enums: DealType
- Read models: Deal, Prospect (frozen snapshots held by the DealStore)
- Input payloads: DealCreate, DealUpdate, ProspectCreate
- Amount parsing for user-typed Dutch notation ("10.000", "1.250,50")

Validation happens while building payloads, before any store mutation or
persistence call: empty organization, unparsable or negative amounts,
unknown stage ids, and empty prospect names are all rejected here.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.dealboard.deals.stages import INITIAL_STAGE_ID, validate_stage_id

# ── Enums ───────────────────────────────────────────────────────────────────


class DealType(str, Enum):
    """Kind of relationship a deal represents."""

    CUSTOMER = "customer"
    PARTNER = "partner"


# ── Amount Parsing ──────────────────────────────────────────────────────────

_AMOUNT_NOISE = re.compile(r"[^\d,-]")


def parse_amount(value: Any) -> float | None:
    """Parse an amount from a number or a user-typed string.

    Strings keep only digits, commas and minus signs; the first comma becomes
    the decimal separator, so thousands dots are dropped ("10.000" -> 10000.0,
    "1.250,50" -> 1250.5). Blank input means "no amount".

    Raises:
        ValueError: If the value cannot be parsed or is negative.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Enter a valid amount")
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        cleaned = _AMOUNT_NOISE.sub("", value).replace(",", ".", 1)
        try:
            parsed = float(cleaned)
        except ValueError:
            raise ValueError("Enter a valid amount") from None
    else:
        raise ValueError("Enter a valid amount")

    if parsed != parsed or parsed < 0:  # NaN or negative
        raise ValueError("Enter a valid amount")
    return parsed


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# ── Read Models ─────────────────────────────────────────────────────────────


class Prospect(BaseModel):
    """A named lead attached to a partner deal."""

    model_config = ConfigDict(frozen=True)

    id: str
    deal_id: str
    name: str
    notes: str | None = None
    created_at: datetime | None = None


class Deal(BaseModel):
    """A tracked sales opportunity.

    Frozen: the store replaces a deal by id rather than mutating it, so any
    snapshot handed out by DealStore.list() stays stable.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    stage_id: str
    organization: str
    deal_type: DealType = DealType.CUSTOMER
    amount: float | None = None
    next_action_at: date | None = None
    notes: str | None = None
    company_url: str | None = None
    contact_url: str | None = None
    last_activity_at: datetime
    created_at: datetime
    prospects: list[Prospect] = Field(default_factory=list)

    @property
    def is_partner(self) -> bool:
        return self.deal_type == DealType.PARTNER


# ── Input Payloads ──────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Fields for a new deal."""

    organization: str
    deal_type: DealType = DealType.CUSTOMER
    amount: float | None = None
    stage_id: str = INITIAL_STAGE_ID
    next_action_at: date | None = None
    notes: str | None = None
    company_url: str | None = None
    contact_url: str | None = None

    @field_validator("organization", mode="before")
    @classmethod
    def _organization_required(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
        if not value:
            raise ValueError("Organization name is required")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> float | None:
        return parse_amount(value)

    @field_validator("stage_id")
    @classmethod
    def _known_stage(cls, value: str) -> str:
        return validate_stage_id(value)

    @field_validator("next_action_at", "notes", "company_url", "contact_url", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)


class DealUpdate(BaseModel):
    """Partial update for a deal.

    Only explicitly provided fields are written (model_dump(exclude_unset=True)),
    so sending amount=None clears the amount while omitting it keeps it.
    """

    organization: str | None = None
    deal_type: DealType | None = None
    amount: float | None = None
    stage_id: str | None = None
    next_action_at: date | None = None
    notes: str | None = None
    company_url: str | None = None
    contact_url: str | None = None

    @field_validator("organization", mode="before")
    @classmethod
    def _organization_not_blank(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Organization name is required")
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("Organization name is required")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> float | None:
        return parse_amount(value)

    @field_validator("stage_id")
    @classmethod
    def _known_stage(cls, value: str | None) -> str | None:
        if value is None:
            raise ValueError("stage_id cannot be cleared")
        return validate_stage_id(value)

    @field_validator("deal_type", mode="before")
    @classmethod
    def _deal_type_required(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("deal_type cannot be cleared")
        return value

    @field_validator("next_action_at", "notes", "company_url", "contact_url", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def changes(self) -> dict[str, Any]:
        """Explicitly provided fields, ready for persistence."""
        return self.model_dump(exclude_unset=True)


class ProspectCreate(BaseModel):
    """Fields for a new prospect on a partner deal."""

    name: str
    notes: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_required(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
        if not value:
            raise ValueError("Prospect name is required")
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)

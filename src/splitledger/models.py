"""Pydantic domain models for SplitLedger."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["admin", "member", "viewer"]

# camelCase on the wire, snake_case in Python
_RECORD_CONFIG = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, frozen=True
)
_PAYLOAD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _ensure_unique(participants: list[str]) -> list[str]:
    seen: set[str] = set()
    for user_id in participants:
        if user_id in seen:
            raise ValueError(f"Duplicate participant: {user_id}")
        seen.add(user_id)
    return participants


Participants = Annotated[list[str], AfterValidator(_ensure_unique)]


# ============================================================================
# Ledger records
# ============================================================================


class User(BaseModel):
    """A person who can join groups."""

    model_config = _RECORD_CONFIG

    id: str
    username: str
    email: str
    name: str
    role: Role = "member"


class Group(BaseModel):
    """A named set of users who share expenses."""

    model_config = _RECORD_CONFIG

    id: str
    name: str
    description: str | None = None
    created_by: str
    participants: Participants = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class Split(BaseModel):
    """One member's share of an expense."""

    model_config = _RECORD_CONFIG

    user_id: str
    amount: Decimal = Field(ge=0)


class Expense(BaseModel):
    """A purchase paid by one member and divided via splits."""

    model_config = _RECORD_CONFIG

    id: str
    group_id: str
    description: str
    amount: Decimal = Field(gt=0)
    paid_by: str
    category: str
    date: datetime
    splits: list[Split] = Field(default_factory=list)


class Settlement(BaseModel):
    """A real-world payment between two members."""

    model_config = _RECORD_CONFIG

    id: str
    group_id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal = Field(gt=0)
    method: str
    notes: str | None = None
    date: datetime


# ============================================================================
# Insert payloads
# ============================================================================


class NewUser(BaseModel):
    """Payload for creating a user."""

    model_config = _PAYLOAD_CONFIG

    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    name: str = Field(min_length=1)
    role: Role = "member"


class NewGroup(BaseModel):
    """Payload for creating a group."""

    model_config = _PAYLOAD_CONFIG

    name: str = Field(min_length=1)
    description: str | None = None
    created_by: str
    participants: Participants = Field(default_factory=list)


class NewExpense(BaseModel):
    """Payload for logging an expense (the sole write path for expenses)."""

    model_config = _PAYLOAD_CONFIG

    group_id: str
    description: str = Field(min_length=1)
    amount: Decimal = Field(gt=0, decimal_places=2)
    paid_by: str
    category: str = "general"
    date: datetime = Field(default_factory=datetime.now)
    splits: list[Split] = Field(min_length=1)


class NewSettlement(BaseModel):
    """Payload for recording a settlement."""

    model_config = _PAYLOAD_CONFIG

    group_id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal = Field(gt=0, decimal_places=2)
    method: str = "cash"
    notes: str | None = None
    date: datetime = Field(default_factory=datetime.now)


class GroupUpdate(BaseModel):
    """Partial update for a group; only set fields are applied."""

    model_config = _PAYLOAD_CONFIG

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    participants: Participants | None = None


class ExpenseUpdate(BaseModel):
    """Partial update for an expense; only set fields are applied."""

    model_config = _PAYLOAD_CONFIG

    description: str | None = Field(default=None, min_length=1)
    amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    paid_by: str | None = None
    category: str | None = None
    date: datetime | None = None
    splits: list[Split] | None = Field(default=None, min_length=1)


# ============================================================================
# Computed results
# ============================================================================

# Signed balance per user id: positive = is owed, negative = owes
BalanceSheet = dict[str, Decimal]


class SettlementSuggestion(BaseModel):
    """A proposed payment that would settle (part of) a balance."""

    model_config = _RECORD_CONFIG

    from_user_id: str
    to_user_id: str
    amount: Decimal

"""Supabase ledger storage over the PostgREST HTTP API."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from ..exceptions import StorageError
from ..models import (
    Expense,
    Group,
    NewExpense,
    NewGroup,
    NewSettlement,
    NewUser,
    Settlement,
    Split,
    User,
)
from .base import (
    EXPENSE_UPDATABLE_FIELDS,
    GROUP_UPDATABLE_FIELDS,
    LedgerRepository,
    check_changes,
)

logger = logging.getLogger(__name__)


def _splits_to_json(splits: list[Split]) -> list[dict[str, str]]:
    return [{"userId": s.user_id, "amount": str(s.amount)} for s in splits]


def _to_row(values: dict[str, Any]) -> dict[str, Any]:
    """Convert model values into JSON-safe column values."""
    row: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            row[key] = str(value)
        elif isinstance(value, datetime):
            row[key] = value.isoformat()
        elif key == "splits":
            row[key] = _splits_to_json([Split.model_validate(s) for s in value])
        else:
            row[key] = value
    return row


class SupabaseRepository(LedgerRepository):
    """Ledger repository backed by Supabase tables via PostgREST."""

    def __init__(
        self,
        url: str,
        api_key: str,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the Supabase client."""
        self.url = url.rstrip("/")
        self.client = httpx.Client(
            base_url=f"{self.url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            },
            timeout=30.0,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> list[dict[str, Any]]:
        """Send a PostgREST request and return the decoded rows."""
        try:
            response = self.client.request(method, f"/{table}", params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Supabase {method} /{table} failed: "
                f"{e.response.status_code} {e.response.text}"
            )
            raise StorageError(
                f"Supabase request failed ({e.response.status_code}): {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise StorageError(f"Supabase request failed: {e}") from e

        if not response.content:
            return []
        rows: list[dict[str, Any]] = response.json()
        return rows

    def _select(self, table: str, **filters: str) -> list[dict[str, Any]]:
        params = {"select": "*"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        return self._request("GET", table, params=params)

    def _select_one(self, table: str, **filters: str) -> dict[str, Any] | None:
        rows = self._select(table, **filters)
        return rows[0] if rows else None

    def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = self._request("POST", table, json=row)
        if not rows:
            raise StorageError(f"Supabase insert into {table} returned no row")
        return rows[0]

    def _update(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        rows = self._request(
            "PATCH", table, params={"id": f"eq.{record_id}"}, json=_to_row(changes)
        )
        return rows[0] if rows else None

    # ========================================================================
    # Row mapping
    # ========================================================================

    @staticmethod
    def _row_to_expense(row: dict[str, Any]) -> Expense:
        return Expense(
            id=row["id"],
            group_id=row["group_id"],
            description=row["description"],
            amount=Decimal(str(row["amount"])),
            paid_by=row["paid_by"],
            category=row["category"],
            date=row["date"],
            splits=[
                Split(user_id=s["userId"], amount=Decimal(str(s["amount"])))
                for s in row.get("splits") or []
            ],
        )

    @staticmethod
    def _row_to_settlement(row: dict[str, Any]) -> Settlement:
        return Settlement(
            id=row["id"],
            group_id=row["group_id"],
            from_user_id=row["from_user_id"],
            to_user_id=row["to_user_id"],
            amount=Decimal(str(row["amount"])),
            method=row["method"],
            notes=row.get("notes"),
            date=row["date"],
        )

    # ========================================================================
    # Users
    # ========================================================================

    def get_user(self, user_id: str) -> User | None:
        row = self._select_one("users", id=user_id)
        return User.model_validate(row) if row else None

    def get_user_by_username(self, username: str) -> User | None:
        row = self._select_one("users", username=username)
        return User.model_validate(row) if row else None

    def get_user_by_email(self, email: str) -> User | None:
        row = self._select_one("users", email=email)
        return User.model_validate(row) if row else None

    def create_user(self, new_user: NewUser) -> User:
        return User.model_validate(self._insert("users", new_user.model_dump()))

    def list_users(self) -> list[User]:
        return [User.model_validate(row) for row in self._select("users")]

    # ========================================================================
    # Groups
    # ========================================================================

    def get_group(self, group_id: str) -> Group | None:
        row = self._select_one("groups", id=group_id)
        return Group.model_validate(row) if row else None

    def create_group(self, new_group: NewGroup) -> Group:
        row = self._insert("groups", _to_row(new_group.model_dump()))
        return Group.model_validate(row)

    def update_group(self, group_id: str, **changes: Any) -> Group | None:
        check_changes(changes, GROUP_UPDATABLE_FIELDS)
        row = self._update("groups", group_id, changes)
        return Group.model_validate(row) if row else None

    def list_groups(self) -> list[Group]:
        return [Group.model_validate(row) for row in self._select("groups")]

    def list_user_groups(self, user_id: str) -> list[Group]:
        # participants is a jsonb array; cs = "contains"
        rows = self._request(
            "GET",
            "groups",
            params={
                "select": "*",
                "or": f'(participants.cs.["{user_id}"],created_by.eq.{user_id})',
            },
        )
        return [Group.model_validate(row) for row in rows]

    # ========================================================================
    # Expenses
    # ========================================================================

    def get_expense(self, expense_id: str) -> Expense | None:
        row = self._select_one("expenses", id=expense_id)
        return self._row_to_expense(row) if row else None

    def create_expense(self, new_expense: NewExpense) -> Expense:
        row = self._insert("expenses", _to_row(new_expense.model_dump()))
        return self._row_to_expense(row)

    def update_expense(self, expense_id: str, **changes: Any) -> Expense | None:
        check_changes(changes, EXPENSE_UPDATABLE_FIELDS)
        row = self._update("expenses", expense_id, changes)
        return self._row_to_expense(row) if row else None

    def delete_expense(self, expense_id: str) -> bool:
        rows = self._request("DELETE", "expenses", params={"id": f"eq.{expense_id}"})
        return len(rows) > 0

    def get_group_expenses(self, group_id: str) -> list[Expense]:
        return [self._row_to_expense(row) for row in self._select("expenses", group_id=group_id)]

    # ========================================================================
    # Settlements
    # ========================================================================

    def get_settlement(self, settlement_id: str) -> Settlement | None:
        row = self._select_one("settlements", id=settlement_id)
        return self._row_to_settlement(row) if row else None

    def create_settlement(self, new_settlement: NewSettlement) -> Settlement:
        row = self._insert("settlements", _to_row(new_settlement.model_dump()))
        return self._row_to_settlement(row)

    def get_group_settlements(self, group_id: str) -> list[Settlement]:
        return [
            self._row_to_settlement(row)
            for row in self._select("settlements", group_id=group_id)
        ]

"""Ledger repository interface shared by all storage backends."""

import uuid
from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import ValidationError
from ..models import (
    Expense,
    Group,
    NewExpense,
    NewGroup,
    NewSettlement,
    NewUser,
    Settlement,
    User,
)

# Fields callers may change on existing records
GROUP_UPDATABLE_FIELDS = frozenset({"name", "description", "participants"})
EXPENSE_UPDATABLE_FIELDS = frozenset(
    {"description", "amount", "paid_by", "category", "date", "splits"}
)


def new_id() -> str:
    """Generate a record id."""
    return str(uuid.uuid4())


def check_changes(changes: dict[str, Any], allowed: frozenset[str]):
    """Reject updates to fields that are not updatable."""
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")


class LedgerRepository(ABC):
    """
    Read/write access to users, groups, expenses and settlements.

    Lookups return None when a record is absent. Backend failures raise
    StorageError. Returned records are immutable snapshots.
    """

    # ========================================================================
    # Users
    # ========================================================================

    @abstractmethod
    def get_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    def create_user(self, new_user: NewUser) -> User: ...

    @abstractmethod
    def list_users(self) -> list[User]: ...

    # ========================================================================
    # Groups
    # ========================================================================

    @abstractmethod
    def get_group(self, group_id: str) -> Group | None: ...

    @abstractmethod
    def create_group(self, new_group: NewGroup) -> Group: ...

    @abstractmethod
    def update_group(self, group_id: str, **changes: Any) -> Group | None: ...

    @abstractmethod
    def list_groups(self) -> list[Group]: ...

    def list_user_groups(self, user_id: str) -> list[Group]:
        """Groups the user participates in or created."""
        return [
            group
            for group in self.list_groups()
            if user_id in group.participants or group.created_by == user_id
        ]

    # ========================================================================
    # Expenses
    # ========================================================================

    @abstractmethod
    def get_expense(self, expense_id: str) -> Expense | None: ...

    @abstractmethod
    def create_expense(self, new_expense: NewExpense) -> Expense: ...

    @abstractmethod
    def update_expense(self, expense_id: str, **changes: Any) -> Expense | None: ...

    @abstractmethod
    def delete_expense(self, expense_id: str) -> bool: ...

    @abstractmethod
    def get_group_expenses(self, group_id: str) -> list[Expense]: ...

    # ========================================================================
    # Settlements
    # ========================================================================

    @abstractmethod
    def get_settlement(self, settlement_id: str) -> Settlement | None: ...

    @abstractmethod
    def create_settlement(self, new_settlement: NewSettlement) -> Settlement: ...

    @abstractmethod
    def get_group_settlements(self, group_id: str) -> list[Settlement]: ...

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self):
        """Release backend resources."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

"""In-memory ledger storage, used for development and tests."""

import logging
import threading
from typing import Any

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
from .base import (
    EXPENSE_UPDATABLE_FIELDS,
    GROUP_UPDATABLE_FIELDS,
    LedgerRepository,
    check_changes,
    new_id,
)

logger = logging.getLogger(__name__)


class MemoryRepository(LedgerRepository):
    """Ledger repository backed by dictionaries."""

    def __init__(self, seed_demo_data: bool = False):
        """Initialize empty stores, optionally with demo data."""
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._groups: dict[str, Group] = {}
        self._expenses: dict[str, Expense] = {}
        self._settlements: dict[str, Settlement] = {}

        if seed_demo_data:
            self._seed_demo_data()

    def _seed_demo_data(self):
        """Load a demo user, three friends and two groups."""
        users = [
            User(id="demo-user", username="demo", email="demo@example.com", name="Demo User"),
            User(id="user-1", username="john", email="john@example.com", name="John Doe"),
            User(id="user-2", username="sarah", email="sarah@example.com", name="Sarah Miller"),
            User(id="user-3", username="mike", email="mike@example.com", name="Mike Johnson"),
        ]
        for user in users:
            self._users[user.id] = user

        groups = [
            Group(
                id="demo-group",
                name="Weekend Trip",
                description="Our weekend getaway expenses",
                created_by="demo-user",
                participants=["demo-user", "user-1", "user-2", "user-3"],
            ),
            Group(
                id="work-group",
                name="Office Lunch",
                description="Team lunch expenses",
                created_by="demo-user",
                participants=["demo-user", "user-1", "user-2"],
            ),
        ]
        for group in groups:
            self._groups[group.id] = group

        logger.debug(f"Seeded {len(users)} demo users and {len(groups)} demo groups")

    # ========================================================================
    # Users
    # ========================================================================

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> User | None:
        return next((user for user in self.list_users() if user.username == username), None)

    def get_user_by_email(self, email: str) -> User | None:
        return next((user for user in self.list_users() if user.email == email), None)

    def create_user(self, new_user: NewUser) -> User:
        user = User(id=new_id(), **new_user.model_dump())
        with self._lock:
            self._users[user.id] = user
        return user

    def list_users(self) -> list[User]:
        with self._lock:
            return list(self._users.values())

    # ========================================================================
    # Groups
    # ========================================================================

    def get_group(self, group_id: str) -> Group | None:
        with self._lock:
            return self._groups.get(group_id)

    def create_group(self, new_group: NewGroup) -> Group:
        group = Group(id=new_id(), **new_group.model_dump())
        with self._lock:
            self._groups[group.id] = group
        return group

    def update_group(self, group_id: str, **changes: Any) -> Group | None:
        check_changes(changes, GROUP_UPDATABLE_FIELDS)
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                return None
            updated = Group.model_validate({**group.model_dump(), **changes})
            self._groups[group_id] = updated
        return updated

    def list_groups(self) -> list[Group]:
        with self._lock:
            return list(self._groups.values())

    # ========================================================================
    # Expenses
    # ========================================================================

    def get_expense(self, expense_id: str) -> Expense | None:
        with self._lock:
            return self._expenses.get(expense_id)

    def create_expense(self, new_expense: NewExpense) -> Expense:
        expense = Expense(id=new_id(), **new_expense.model_dump())
        with self._lock:
            self._expenses[expense.id] = expense
        return expense

    def update_expense(self, expense_id: str, **changes: Any) -> Expense | None:
        check_changes(changes, EXPENSE_UPDATABLE_FIELDS)
        with self._lock:
            expense = self._expenses.get(expense_id)
            if expense is None:
                return None
            updated = Expense.model_validate({**expense.model_dump(), **changes})
            self._expenses[expense_id] = updated
        return updated

    def delete_expense(self, expense_id: str) -> bool:
        with self._lock:
            return self._expenses.pop(expense_id, None) is not None

    def get_group_expenses(self, group_id: str) -> list[Expense]:
        with self._lock:
            expenses = list(self._expenses.values())
        return [e for e in expenses if e.group_id == group_id]

    # ========================================================================
    # Settlements
    # ========================================================================

    def get_settlement(self, settlement_id: str) -> Settlement | None:
        with self._lock:
            return self._settlements.get(settlement_id)

    def create_settlement(self, new_settlement: NewSettlement) -> Settlement:
        settlement = Settlement(id=new_id(), **new_settlement.model_dump())
        with self._lock:
            self._settlements[settlement.id] = settlement
        return settlement

    def get_group_settlements(self, group_id: str) -> list[Settlement]:
        with self._lock:
            settlements = list(self._settlements.values())
        return [s for s in settlements if s.group_id == group_id]

"""SQLite ledger storage (the "database" backend)."""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

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
    new_id,
)

logger = logging.getLogger(__name__)


def _dump_splits(splits: list[Split]) -> str:
    # Amounts as strings so no precision is lost through JSON floats
    return json.dumps([{"userId": s.user_id, "amount": str(s.amount)} for s in splits])


def _load_splits(raw: str) -> list[Split]:
    return [
        Split(user_id=item["userId"], amount=Decimal(str(item["amount"])))
        for item in json.loads(raw)
    ]


class SqliteRepository(LedgerRepository):
    """SQLite database manager implementing the ledger repository."""

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                email TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'member'
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expense_groups (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                created_by TEXT NOT NULL,
                participants TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        # Amounts are TEXT so Decimal values round-trip exactly
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL REFERENCES expense_groups(id),
                description TEXT NOT NULL,
                amount TEXT NOT NULL,
                paid_by TEXT NOT NULL,
                category TEXT NOT NULL,
                date TIMESTAMP NOT NULL,
                splits TEXT NOT NULL DEFAULT '[]'
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlements (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL REFERENCES expense_groups(id),
                from_user_id TEXT NOT NULL,
                to_user_id TEXT NOT NULL,
                amount TEXT NOT NULL,
                method TEXT NOT NULL,
                notes TEXT,
                date TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_expenses_group ON expenses (group_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_settlements_group ON settlements (group_id)"
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    def _write(self, sql: str, params: tuple) -> int:
        """Run a write statement and commit, returning the affected row count."""
        with self._lock:
            try:
                cursor = self.conn.execute(sql, params)
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageError(f"Database write failed: {e}") from e
        return cursor.rowcount

    def _fetch_one(self, sql: str, params: tuple) -> sqlite3.Row | None:
        return self.conn.execute(sql, params).fetchone()

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    # ========================================================================
    # Row mapping
    # ========================================================================

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            name=row["name"],
            role=row["role"],
        )

    @staticmethod
    def _row_to_group(row: sqlite3.Row) -> Group:
        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_by=row["created_by"],
            participants=json.loads(row["participants"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            id=row["id"],
            group_id=row["group_id"],
            description=row["description"],
            amount=Decimal(row["amount"]),
            paid_by=row["paid_by"],
            category=row["category"],
            date=datetime.fromisoformat(row["date"]),
            splits=_load_splits(row["splits"]),
        )

    @staticmethod
    def _row_to_settlement(row: sqlite3.Row) -> Settlement:
        return Settlement(
            id=row["id"],
            group_id=row["group_id"],
            from_user_id=row["from_user_id"],
            to_user_id=row["to_user_id"],
            amount=Decimal(row["amount"]),
            method=row["method"],
            notes=row["notes"],
            date=datetime.fromisoformat(row["date"]),
        )

    # ========================================================================
    # Users
    # ========================================================================

    def get_user(self, user_id: str) -> User | None:
        row = self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> User | None:
        row = self._fetch_one("SELECT * FROM users WHERE username = ?", (username,))
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> User | None:
        row = self._fetch_one("SELECT * FROM users WHERE email = ?", (email,))
        return self._row_to_user(row) if row else None

    def create_user(self, new_user: NewUser) -> User:
        user = User(id=new_id(), **new_user.model_dump())
        self._write(
            "INSERT INTO users (id, username, email, name, role) VALUES (?, ?, ?, ?, ?)",
            (user.id, user.username, user.email, user.name, user.role),
        )
        return user

    def list_users(self) -> list[User]:
        rows = self._fetch_all("SELECT * FROM users ORDER BY username")
        return [self._row_to_user(row) for row in rows]

    # ========================================================================
    # Groups
    # ========================================================================

    def get_group(self, group_id: str) -> Group | None:
        row = self._fetch_one("SELECT * FROM expense_groups WHERE id = ?", (group_id,))
        return self._row_to_group(row) if row else None

    def create_group(self, new_group: NewGroup) -> Group:
        group = Group(id=new_id(), **new_group.model_dump())
        self._write(
            """
            INSERT INTO expense_groups (
                id, name, description, created_by, participants, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                group.id,
                group.name,
                group.description,
                group.created_by,
                json.dumps(group.participants),
                group.created_at.isoformat(),
            ),
        )
        return group

    def update_group(self, group_id: str, **changes: Any) -> Group | None:
        check_changes(changes, GROUP_UPDATABLE_FIELDS)
        with self._lock:
            group = self.get_group(group_id)
            if group is None:
                return None

            updated = Group.model_validate({**group.model_dump(), **changes})
            self._write(
                "UPDATE expense_groups SET name = ?, description = ?, participants = ? "
                "WHERE id = ?",
                (
                    updated.name,
                    updated.description,
                    json.dumps(updated.participants),
                    group_id,
                ),
            )
        return updated

    def list_groups(self) -> list[Group]:
        rows = self._fetch_all("SELECT * FROM expense_groups ORDER BY created_at")
        return [self._row_to_group(row) for row in rows]

    # ========================================================================
    # Expenses
    # ========================================================================

    def get_expense(self, expense_id: str) -> Expense | None:
        row = self._fetch_one("SELECT * FROM expenses WHERE id = ?", (expense_id,))
        return self._row_to_expense(row) if row else None

    def create_expense(self, new_expense: NewExpense) -> Expense:
        expense = Expense(id=new_id(), **new_expense.model_dump())
        self._write(
            """
            INSERT INTO expenses (
                id, group_id, description, amount, paid_by, category, date, splits
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                expense.id,
                expense.group_id,
                expense.description,
                str(expense.amount),
                expense.paid_by,
                expense.category,
                expense.date.isoformat(),
                _dump_splits(expense.splits),
            ),
        )
        return expense

    def update_expense(self, expense_id: str, **changes: Any) -> Expense | None:
        check_changes(changes, EXPENSE_UPDATABLE_FIELDS)
        with self._lock:
            expense = self.get_expense(expense_id)
            if expense is None:
                return None

            updated = Expense.model_validate({**expense.model_dump(), **changes})
            self._write(
                """
                UPDATE expenses SET
                    description = ?, amount = ?, paid_by = ?, category = ?,
                    date = ?, splits = ?
                WHERE id = ?
                """,
                (
                    updated.description,
                    str(updated.amount),
                    updated.paid_by,
                    updated.category,
                    updated.date.isoformat(),
                    _dump_splits(updated.splits),
                    expense_id,
                ),
            )
        return updated

    def delete_expense(self, expense_id: str) -> bool:
        return self._write("DELETE FROM expenses WHERE id = ?", (expense_id,)) > 0

    def get_group_expenses(self, group_id: str) -> list[Expense]:
        rows = self._fetch_all(
            "SELECT * FROM expenses WHERE group_id = ? ORDER BY date", (group_id,)
        )
        return [self._row_to_expense(row) for row in rows]

    # ========================================================================
    # Settlements
    # ========================================================================

    def get_settlement(self, settlement_id: str) -> Settlement | None:
        row = self._fetch_one(
            "SELECT * FROM settlements WHERE id = ?", (settlement_id,)
        )
        return self._row_to_settlement(row) if row else None

    def create_settlement(self, new_settlement: NewSettlement) -> Settlement:
        settlement = Settlement(id=new_id(), **new_settlement.model_dump())
        self._write(
            """
            INSERT INTO settlements (
                id, group_id, from_user_id, to_user_id, amount, method, notes, date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                settlement.id,
                settlement.group_id,
                settlement.from_user_id,
                settlement.to_user_id,
                str(settlement.amount),
                settlement.method,
                settlement.notes,
                settlement.date.isoformat(),
            ),
        )
        return settlement

    def get_group_settlements(self, group_id: str) -> list[Settlement]:
        rows = self._fetch_all(
            "SELECT * FROM settlements WHERE group_id = ? ORDER BY date", (group_id,)
        )
        return [self._row_to_settlement(row) for row in rows]

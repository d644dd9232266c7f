"""Service layer that composes the ledger repository and balance logic.

The repository is injected, so the same service runs against any storage
backend (or an in-memory fake in tests).
"""

import logging
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NotFoundError, ValidationError
from ..models import (
    BalanceSheet,
    Expense,
    Group,
    NewExpense,
    NewGroup,
    NewSettlement,
    Settlement,
    SettlementSuggestion,
    Split,
    User,
)
from ..storage import LedgerRepository
from .balances import compute_balances, format_amount, quantize_amount
from .suggest import suggest_settlement

logger = logging.getLogger(__name__)

# Largest allowed gap between an expense amount and the sum of its splits
SPLIT_TOLERANCE = Decimal("0.01")


def _check_members(group: Group, user_ids: list[str], role: str):
    """Raise ValidationError for any user id outside the group."""
    for user_id in user_ids:
        if user_id not in group.participants:
            raise ValidationError(
                f"{role} {user_id} is not a participant of group {group.id}"
            )


def validate_expense_splits(amount: Decimal, splits: list[Split]):
    """
    Check that an expense's splits add up to its amount.

    Args:
        amount: The expense total
        splits: The per-member shares

    Raises:
        ValidationError: If there are no splits, a user appears twice, or
                         the shares miss the total by more than a cent
    """
    if not splits:
        raise ValidationError("An expense needs at least one split")

    user_ids = [split.user_id for split in splits]
    if len(set(user_ids)) != len(user_ids):
        raise ValidationError("Each member may appear only once in the splits")

    total = sum((split.amount for split in splits), Decimal("0"))
    if abs(total - amount) > SPLIT_TOLERANCE:
        raise ValidationError(
            f"Split amounts (${format_amount(total)}) don't match "
            f"expense amount (${format_amount(amount)})"
        )


class LedgerService:
    """Group, expense and settlement operations over a ledger repository."""

    def __init__(self, repository: LedgerRepository):
        """Initialize the ledger service."""
        self.repository = repository

    # ========================================================================
    # Lookups
    # ========================================================================

    def get_user(self, user_id: str) -> User:
        user = self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def get_group(self, group_id: str) -> Group:
        group = self.repository.get_group(group_id)
        if group is None:
            raise NotFoundError("Group", group_id)
        return group

    def get_expense(self, expense_id: str) -> Expense:
        expense = self.repository.get_expense(expense_id)
        if expense is None:
            raise NotFoundError("Expense", expense_id)
        return expense

    def list_user_groups(self, user_id: str) -> list[Group]:
        return self.repository.list_user_groups(user_id)

    def list_members(self, group: Group) -> list[User]:
        """Resolve a group's participants to users, in roster order."""
        members = []
        for user_id in group.participants:
            user = self.repository.get_user(user_id)
            if user is None:
                logger.warning(f"Group {group.id} lists unknown user {user_id}")
                continue
            members.append(user)
        return members

    # ========================================================================
    # Balances
    # ========================================================================

    def get_balances(self, group_id: str) -> BalanceSheet:
        """
        Compute current balances for a group.

        Fetches a fresh snapshot of the group, its expenses and its
        settlements, then folds them. Nothing is cached.

        Args:
            group_id: The group ID

        Returns:
            Balance per participant

        Raises:
            NotFoundError: If the group does not exist
            DataIntegrityError: If a record references a non-participant
        """
        group = self.get_group(group_id)
        expenses = self.repository.get_group_expenses(group_id)
        settlements = self.repository.get_group_settlements(group_id)

        return compute_balances(group, expenses, settlements)

    def suggest_settlement(
        self,
        group_id: str,
        user_id: str,
        counterparty_id: str | None = None,
    ) -> SettlementSuggestion | None:
        """
        Suggest a settlement for a user ("settle up" or "settle with").

        Args:
            group_id: The group ID
            user_id: The member who wants to settle
            counterparty_id: Optional member to settle with

        Returns:
            A suggestion, or None if there is nothing to settle
        """
        group = self.get_group(group_id)
        sheet = compute_balances(
            group,
            self.repository.get_group_expenses(group_id),
            self.repository.get_group_settlements(group_id),
        )
        suggestion = suggest_settlement(
            user_id, sheet, group.participants, counterparty_id=counterparty_id
        )

        if suggestion:
            logger.info(
                f"Suggested {suggestion.from_user_id} pays {suggestion.to_user_id} "
                f"${suggestion.amount} in group {group_id}"
            )

        return suggestion

    # ========================================================================
    # Writes
    # ========================================================================

    def create_group(self, new_group: NewGroup) -> Group:
        """Create a group; the creator is always a participant."""
        participants = list(new_group.participants)
        if new_group.created_by not in participants:
            participants.insert(0, new_group.created_by)

        for user_id in participants:
            self.get_user(user_id)

        group = self.repository.create_group(
            new_group.model_copy(update={"participants": participants})
        )
        logger.info(f"Created group {group.id} with {len(participants)} participants")
        return group

    def update_group(self, group_id: str, **changes: Any) -> Group:
        """
        Update a group's name, description or participants.

        Raises:
            NotFoundError: If the group or a new participant does not exist
            ValidationError: If a removed participant still appears in the
                             group's expenses or settlements
        """
        if "participants" in changes:
            current = self.get_group(group_id)
            for user_id in changes["participants"]:
                self.get_user(user_id)

            removed = set(current.participants) - set(changes["participants"])
            if removed:
                self._check_not_referenced(group_id, removed)

        group = self.repository.update_group(group_id, **changes)
        if group is None:
            raise NotFoundError("Group", group_id)
        logger.info(f"Updated group {group_id}")
        return group

    def _check_not_referenced(self, group_id: str, user_ids: set[str]):
        """Raise ValidationError if any user still appears in the group's ledger."""
        for expense in self.repository.get_group_expenses(group_id):
            involved = {expense.paid_by} | {s.user_id for s in expense.splits}
            if involved & user_ids:
                raise ValidationError(
                    f"Cannot remove {min(involved & user_ids)} from group {group_id}: "
                    f"they appear in expense {expense.id}"
                )

        for settlement in self.repository.get_group_settlements(group_id):
            involved = {settlement.from_user_id, settlement.to_user_id}
            if involved & user_ids:
                raise ValidationError(
                    f"Cannot remove {min(involved & user_ids)} from group {group_id}: "
                    f"they appear in settlement {settlement.id}"
                )

    def record_expense(self, new_expense: NewExpense) -> Expense:
        """
        Validate and store a new expense.

        Args:
            new_expense: The expense payload

        Returns:
            The stored expense

        Raises:
            NotFoundError: If the group does not exist
            ValidationError: If the payer or a split member is not a
                             participant, or the splits don't add up
        """
        group = self.get_group(new_expense.group_id)

        _check_members(group, [new_expense.paid_by], "Payer")
        _check_members(group, [s.user_id for s in new_expense.splits], "Split member")
        validate_expense_splits(new_expense.amount, new_expense.splits)

        expense = self.repository.create_expense(new_expense)
        logger.info(
            f"Recorded expense {expense.id} (${format_amount(expense.amount)}) "
            f"in group {expense.group_id}"
        )
        return expense

    def update_expense(self, expense_id: str, **changes: Any) -> Expense:
        """Update an expense, re-validating its amount, payer and splits."""
        current = self.get_expense(expense_id)
        group = self.get_group(current.group_id)

        try:
            candidate = Expense.model_validate({**current.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid expense update: {e}") from e

        if candidate.amount != quantize_amount(candidate.amount):
            raise ValidationError(
                f"Expense amount {candidate.amount} has more than 2 decimal places"
            )
        _check_members(group, [candidate.paid_by], "Payer")
        _check_members(group, [s.user_id for s in candidate.splits], "Split member")
        validate_expense_splits(candidate.amount, candidate.splits)

        expense = self.repository.update_expense(expense_id, **changes)
        if expense is None:
            raise NotFoundError("Expense", expense_id)
        logger.info(f"Updated expense {expense_id}")
        return expense

    def delete_expense(self, expense_id: str):
        if not self.repository.delete_expense(expense_id):
            raise NotFoundError("Expense", expense_id)
        logger.info(f"Deleted expense {expense_id}")

    def record_settlement(self, new_settlement: NewSettlement) -> Settlement:
        """
        Validate and store a settlement between two group members.

        Raises:
            NotFoundError: If the group does not exist
            ValidationError: If payer and receiver are the same person or
                             either is not a participant
        """
        group = self.get_group(new_settlement.group_id)

        if new_settlement.from_user_id == new_settlement.to_user_id:
            raise ValidationError("A settlement needs two different members")
        _check_members(
            group,
            [new_settlement.from_user_id, new_settlement.to_user_id],
            "Settlement member",
        )

        settlement = self.repository.create_settlement(new_settlement)
        logger.info(
            f"Recorded settlement {settlement.id}: {settlement.from_user_id} -> "
            f"{settlement.to_user_id} ${quantize_amount(settlement.amount)}"
        )
        return settlement

    def settle(
        self,
        suggestion: SettlementSuggestion,
        group_id: str,
        method: str = "cash",
        notes: str | None = None,
    ) -> Settlement:
        """Record a suggested settlement as an actual payment."""
        return self.record_settlement(
            NewSettlement(
                group_id=group_id,
                from_user_id=suggestion.from_user_id,
                to_user_id=suggestion.to_user_id,
                amount=suggestion.amount,
                method=method,
                notes=notes,
            )
        )

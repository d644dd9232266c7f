"""Tests for LedgerService layer."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from splitledger.exceptions import DataIntegrityError, NotFoundError, ValidationError
from splitledger.ledger.service import LedgerService, validate_expense_splits
from splitledger.models import (
    Group,
    NewExpense,
    NewGroup,
    NewSettlement,
    Split,
)
from splitledger.storage import MemoryRepository


@pytest.fixture
def repository():
    """Create an in-memory repository with demo data."""
    return MemoryRepository(seed_demo_data=True)


@pytest.fixture
def service(repository):
    """Create a LedgerService instance."""
    return LedgerService(repository)


def dinner(amount: str = "30.00", paid_by: str = "demo-user", **shares: str) -> NewExpense:
    """Build an expense in the Office Lunch group (demo-user, user-1, user-2)."""
    shares = shares or {"demo-user": "10.00", "user-1": "10.00", "user-2": "10.00"}
    return NewExpense(
        group_id="work-group",
        description="Dinner",
        amount=Decimal(amount),
        paid_by=paid_by,
        category="food",
        splits=[Split(user_id=u, amount=Decimal(a)) for u, a in shares.items()],
    )


class TestGetBalances:
    """Tests for get_balances method."""

    def test_new_group_has_zero_balances(self, service):
        """Every member starts at zero."""
        sheet = service.get_balances("work-group")

        assert sheet == {
            "demo-user": Decimal("0"),
            "user-1": Decimal("0"),
            "user-2": Decimal("0"),
        }

    def test_reflects_recorded_expenses_and_settlements(self, service):
        """Balances are recomputed from the current ledger on every call."""
        service.record_expense(dinner())
        assert service.get_balances("work-group")["demo-user"] == Decimal("20.00")

        service.record_settlement(
            NewSettlement(
                group_id="work-group",
                from_user_id="user-1",
                to_user_id="demo-user",
                amount=Decimal("10.00"),
            )
        )
        sheet = service.get_balances("work-group")

        assert sheet == {
            "demo-user": Decimal("10.00"),
            "user-1": Decimal("0.00"),
            "user-2": Decimal("-10.00"),
        }

    def test_unknown_group_raises(self, service):
        """Missing groups raise NotFoundError."""
        with pytest.raises(NotFoundError):
            service.get_balances("nope")

    def test_reads_through_repository_contract(self):
        """Only the ledger read contract is needed to compute balances."""
        repository = MagicMock()
        repository.get_group.return_value = Group(
            id="g", name="G", created_by="A", participants=["A", "B"]
        )
        repository.get_group_expenses.return_value = []
        repository.get_group_settlements.return_value = []

        sheet = LedgerService(repository).get_balances("g")

        assert sheet == {"A": Decimal("0"), "B": Decimal("0")}
        repository.get_group.assert_called_once_with("g")
        repository.get_group_expenses.assert_called_once_with("g")
        repository.get_group_settlements.assert_called_once_with("g")

    def test_corrupt_record_fails_only_that_group(self, service, repository):
        """A record referencing a non-participant fails the computation."""
        # Bypass service validation to simulate a corrupt stored record
        repository.create_expense(dinner(paid_by="user-3"))

        with pytest.raises(DataIntegrityError):
            service.get_balances("work-group")

        assert service.get_balances("demo-group")["user-3"] == Decimal("0")


class TestSuggestSettlement:
    """Tests for suggest_settlement method."""

    def test_settle_up_for_debtor(self, service):
        """A debtor is told to pay the biggest creditor."""
        service.record_expense(dinner())

        suggestion = service.suggest_settlement("work-group", "user-1")

        assert suggestion.from_user_id == "user-1"
        assert suggestion.to_user_id == "demo-user"
        assert suggestion.amount == Decimal("10.00")

    def test_settle_with_counterparty(self, service):
        """Settling with a specific member meets halfway."""
        service.record_expense(dinner())

        suggestion = service.suggest_settlement("work-group", "user-1", "demo-user")

        assert suggestion.amount == Decimal("15.00")

    def test_settle_records_suggestion(self, service):
        """Recording a settle-up suggestion clears the debtor's balance."""
        service.record_expense(dinner())
        suggestion = service.suggest_settlement("work-group", "user-1")

        settlement = service.settle(suggestion, "work-group", method="venmo")

        assert settlement.method == "venmo"
        assert service.get_balances("work-group")["user-1"] == Decimal("0.00")

    def test_nothing_to_settle(self, service):
        """No activity means no suggestion."""
        assert service.suggest_settlement("work-group", "user-1") is None


class TestRecordExpense:
    """Tests for record_expense validation."""

    def test_stores_valid_expense(self, service, repository):
        """A valid expense is persisted."""
        expense = service.record_expense(dinner())

        assert repository.get_expense(expense.id) == expense

    def test_allows_one_cent_tolerance(self, service):
        """Splits within a cent of the amount are accepted."""
        service.record_expense(
            dinner("10.00", **{"demo-user": "3.33", "user-1": "3.33", "user-2": "3.33"})
        )

    def test_rejects_split_mismatch(self, service):
        """Splits that miss the amount by more than a cent are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            service.record_expense(dinner("30.00", **{"demo-user": "10.00", "user-1": "10.00"}))

        assert "don't match" in str(exc_info.value)

    def test_rejects_non_participant_payer(self, service):
        """The payer must belong to the group."""
        with pytest.raises(ValidationError):
            service.record_expense(dinner(paid_by="user-3"))

    def test_rejects_non_participant_split(self, service):
        """Every split member must belong to the group."""
        with pytest.raises(ValidationError):
            service.record_expense(dinner("20.00", **{"demo-user": "10.00", "user-3": "10.00"}))

    def test_rejects_duplicate_split_members(self):
        """A member may appear only once in the splits."""
        splits = [
            Split(user_id="A", amount=Decimal("5.00")),
            Split(user_id="A", amount=Decimal("5.00")),
        ]

        with pytest.raises(ValidationError):
            validate_expense_splits(Decimal("10.00"), splits)

    def test_update_revalidates(self, service):
        """Updating an expense re-checks its splits."""
        expense = service.record_expense(dinner())

        with pytest.raises(ValidationError):
            service.update_expense(expense.id, amount=Decimal("50.00"))

        updated = service.update_expense(expense.id, description="Late dinner")
        assert updated.description == "Late dinner"

    def test_delete_expense(self, service):
        """Deleted expenses no longer count; deleting twice is NotFound."""
        expense = service.record_expense(dinner())
        service.delete_expense(expense.id)

        assert service.get_balances("work-group")["demo-user"] == Decimal("0")
        with pytest.raises(NotFoundError):
            service.delete_expense(expense.id)


class TestRecordSettlement:
    """Tests for record_settlement validation."""

    def test_rejects_self_payment(self, service):
        """A member cannot settle with themselves."""
        with pytest.raises(ValidationError):
            service.record_settlement(
                NewSettlement(
                    group_id="work-group",
                    from_user_id="user-1",
                    to_user_id="user-1",
                    amount=Decimal("5.00"),
                )
            )

    def test_rejects_non_participant(self, service):
        """Both members must belong to the group."""
        with pytest.raises(ValidationError):
            service.record_settlement(
                NewSettlement(
                    group_id="work-group",
                    from_user_id="user-3",
                    to_user_id="user-1",
                    amount=Decimal("5.00"),
                )
            )


class TestCreateGroup:
    """Tests for create_group method."""

    def test_creator_is_added_as_participant(self, service):
        """The creator always belongs to their group."""
        group = service.create_group(
            NewGroup(name="Ski", created_by="user-1", participants=["user-2"])
        )

        assert group.participants == ["user-1", "user-2"]

    def test_unknown_participant_raises(self, service):
        """Participants must be existing users."""
        with pytest.raises(NotFoundError):
            service.create_group(
                NewGroup(name="Ski", created_by="user-1", participants=["ghost"])
            )


class TestUpdateGroup:
    """Tests for update_group method."""

    def test_rename(self, service):
        """Name changes are stored."""
        group = service.update_group("work-group", name="Team Lunch")

        assert group.name == "Team Lunch"
        assert service.get_group("work-group").name == "Team Lunch"

    def test_add_participant(self, service):
        """New members start with a zero balance."""
        service.record_expense(dinner())

        service.update_group(
            "work-group", participants=["demo-user", "user-1", "user-2", "user-3"]
        )

        assert service.get_balances("work-group")["user-3"] == Decimal("0")

    def test_remove_unreferenced_participant(self, service):
        """Members with no ledger activity can be removed."""
        service.record_expense(dinner("20.00", **{"demo-user": "10.00", "user-1": "10.00"}))

        group = service.update_group("work-group", participants=["demo-user", "user-1"])

        assert group.participants == ["demo-user", "user-1"]
        assert service.get_balances("work-group") == {
            "demo-user": Decimal("10.00"),
            "user-1": Decimal("-10.00"),
        }

    def test_cannot_remove_member_with_expenses(self, service):
        """Removing a member who appears in an expense is rejected."""
        service.record_expense(dinner("20.00", **{"demo-user": "10.00", "user-1": "10.00"}))

        with pytest.raises(ValidationError) as exc_info:
            service.update_group("work-group", participants=["demo-user", "user-2"])

        assert "user-1" in str(exc_info.value)
        # Ledger stays consistent
        assert service.get_group("work-group").participants == ["demo-user", "user-1", "user-2"]
        assert service.get_balances("work-group")["user-1"] == Decimal("-10.00")

    def test_cannot_remove_member_with_settlements(self, service):
        """Removing a member who appears in a settlement is rejected."""
        service.record_settlement(
            NewSettlement(
                group_id="work-group",
                from_user_id="user-2",
                to_user_id="user-1",
                amount=Decimal("5.00"),
            )
        )

        with pytest.raises(ValidationError) as exc_info:
            service.update_group("work-group", participants=["demo-user", "user-1"])

        assert "settlement" in str(exc_info.value)

    def test_unknown_new_participant(self, service):
        """Added participants must be existing users."""
        with pytest.raises(NotFoundError):
            service.update_group("work-group", participants=["demo-user", "ghost"])

    def test_unknown_group(self, service):
        with pytest.raises(NotFoundError):
            service.update_group("nope", name="x")

    def test_rejects_non_updatable_field(self, service):
        """Fields outside the whitelist are a validation error."""
        with pytest.raises(ValidationError):
            service.update_group("work-group", created_by="user-1")


class TestUpdateExpenseAmount:
    """Amount checks when updating an expense."""

    def test_rejects_sub_cent_amount(self, service):
        """Updated amounts keep the 2-decimal limit of new expenses."""
        expense = service.record_expense(dinner())

        with pytest.raises(ValidationError) as exc_info:
            service.update_expense(expense.id, amount=Decimal("30.005"))

        assert "decimal places" in str(exc_info.value)
        assert service.get_expense(expense.id).amount == Decimal("30.00")

    def test_rejects_non_positive_amount(self, service):
        """A zero amount is a validation error, not a crash."""
        expense = service.record_expense(dinner())

        with pytest.raises(ValidationError):
            service.update_expense(expense.id, amount=Decimal("0"))

    def test_amount_and_splits_together(self, service):
        """Changing amount and splits at once is accepted when they agree."""
        expense = service.record_expense(dinner())

        updated = service.update_expense(
            expense.id,
            amount=Decimal("12.00"),
            splits=[
                Split(user_id="user-1", amount=Decimal("6.00")),
                Split(user_id="user-2", amount=Decimal("6.00")),
            ],
        )

        assert updated.amount == Decimal("12.00")
        assert service.get_balances("work-group") == {
            "demo-user": Decimal("12.00"),
            "user-1": Decimal("-6.00"),
            "user-2": Decimal("-6.00"),
        }

"""Core balance computation for group expenses and settlements."""

import logging
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..exceptions import DataIntegrityError, ValidationError
from ..models import BalanceSheet, Expense, Group, Settlement

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def parse_amount(value: str | int | Decimal) -> Decimal:
    """
    Parse a boundary amount into a Decimal.

    Floats are rejected: money never passes through binary floating point.

    Args:
        value: Amount as a string ("12.50"), int or Decimal

    Returns:
        The amount as a Decimal

    Raises:
        ValidationError: If the value is not a finite decimal number
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"Amount must be a string or Decimal, got {value!r}")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError(f"Malformed amount: {value!r}") from e

    if not amount.is_finite():
        raise ValidationError(f"Amount must be finite, got {value!r}")

    return amount


def quantize_amount(amount: Decimal) -> Decimal:
    """Round an amount to cents using ROUND_HALF_UP."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Serialize an amount as a 2-decimal string."""
    return str(quantize_amount(amount))


def format_balances(sheet: BalanceSheet) -> dict[str, str]:
    """Serialize every balance in a sheet as a 2-decimal string."""
    return {user_id: format_amount(balance) for user_id, balance in sheet.items()}


def sheet_total(sheet: BalanceSheet) -> Decimal:
    """Sum of all balances; zero for a consistent ledger."""
    return sum(sheet.values(), ZERO)


def _credit(sheet: dict[str, Decimal], user_id: str, amount: Decimal, source: str):
    if user_id not in sheet:
        raise DataIntegrityError(
            f"{source} references user {user_id}, who is not a group participant",
            offending_id=user_id,
        )
    sheet[user_id] += amount


def compute_balances(
    group: Group,
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> BalanceSheet:
    """
    Fold a group's expenses and settlements into per-member net balances.

    Steps:
    1. Start every participant at zero
    2. Credit each expense payer the full amount, debit each split
    3. Credit each settlement payer, debit its receiver
    4. Quantize the results to cents

    The fold is commutative, so the order of either sequence does not
    affect the result.

    Args:
        group: The group whose participants define the sheet's keys
        expenses: The group's expenses
        settlements: The group's settlements

    Returns:
        Balance per participant, in participant order

    Raises:
        DataIntegrityError: If the group has no participants, or a record
                            references a user outside the roster
    """
    if not group.participants:
        raise DataIntegrityError(f"Group {group.id} has no participants")

    sheet: dict[str, Decimal] = {user_id: ZERO for user_id in group.participants}

    expense_count = 0
    for expense in expenses:
        source = f"Expense {expense.id}"
        _credit(sheet, expense.paid_by, expense.amount, source)
        for split in expense.splits:
            _credit(sheet, split.user_id, -split.amount, source)
        expense_count += 1

    settlement_count = 0
    for settlement in settlements:
        source = f"Settlement {settlement.id}"
        _credit(sheet, settlement.from_user_id, settlement.amount, source)
        _credit(sheet, settlement.to_user_id, -settlement.amount, source)
        settlement_count += 1

    balances = {user_id: quantize_amount(value) for user_id, value in sheet.items()}

    total = sheet_total(balances)
    if total != ZERO:
        # Splits that don't add up to their expense leak into the total
        logger.warning(f"Balances for group {group.id} do not sum to zero: {total}")

    logger.debug(
        f"Computed balances for group {group.id} from {expense_count} expenses "
        f"and {settlement_count} settlements"
    )

    return balances


def split_equally(amount: Decimal, user_ids: Sequence[str]) -> dict[str, Decimal]:
    """
    Divide an amount into equal cent-exact shares.

    Leftover cents go one each to the first members, so the shares always
    sum exactly to the amount.

    Args:
        amount: Total to divide (at most 2 decimal places)
        user_ids: Members sharing the amount, in order

    Returns:
        Share per user id

    Raises:
        ValidationError: If there are no members to split between
    """
    if not user_ids:
        raise ValidationError("Cannot split an amount between zero members")

    total_cents = int(quantize_amount(amount) / CENT)
    base, remainder = divmod(total_cents, len(user_ids))

    return {
        user_id: (base + (1 if i < remainder else 0)) * CENT
        for i, user_id in enumerate(user_ids)
    }

"""Settlement suggestions computed from a balance sheet."""

import logging
from collections.abc import Sequence
from decimal import Decimal

from ..exceptions import DataIntegrityError
from ..models import BalanceSheet, SettlementSuggestion
from .balances import ZERO, quantize_amount

logger = logging.getLogger(__name__)


def _balance_of(sheet: BalanceSheet, user_id: str) -> Decimal:
    # Members missing from the sheet have no activity yet
    return sheet.get(user_id, ZERO)


def _suggest_settle_up(
    current_user_id: str, sheet: BalanceSheet, participants: Sequence[str]
) -> tuple[str, str, Decimal] | None:
    candidates = [user_id for user_id in participants if user_id != current_user_id]
    if not candidates:
        return None

    current = _balance_of(sheet, current_user_id)

    if current < 0:
        # Debtor: pay the biggest creditor the whole debt
        # max() keeps the first of equal candidates
        payee = max(candidates, key=lambda user_id: _balance_of(sheet, user_id))
        return current_user_id, payee, abs(current)

    # Creditor (or even): ask the biggest debtor to pay what they owe
    payer = min(candidates, key=lambda user_id: _balance_of(sheet, user_id))
    return payer, current_user_id, abs(_balance_of(sheet, payer))


def _suggest_settle_with(
    current_user_id: str,
    counterparty_id: str,
    sheet: BalanceSheet,
    participants: Sequence[str],
) -> tuple[str, str, Decimal] | None:
    if counterparty_id not in participants:
        raise DataIntegrityError(
            f"User {counterparty_id} is not a group participant",
            offending_id=counterparty_id,
        )
    if counterparty_id == current_user_id:
        return None

    current = _balance_of(sheet, current_user_id)
    other = _balance_of(sheet, counterparty_id)

    # Half-way netting between the pair, not the full outstanding debt
    amount = abs(current - other) / 2

    if current < other:
        return current_user_id, counterparty_id, amount
    return counterparty_id, current_user_id, amount


def suggest_settlement(
    current_user_id: str,
    sheet: BalanceSheet,
    participants: Sequence[str],
    counterparty_id: str | None = None,
) -> SettlementSuggestion | None:
    """
    Propose who should pay whom, and how much, for a "settle" action.

    Two modes:
    - Settle up (no counterparty): a debtor pays the biggest creditor their
      whole debt; a creditor is paid by the biggest debtor. Ties go to the
      first candidate in participant order.
    - Settle with (counterparty given): the lower balance pays the higher
      one half of the difference between the two balances.

    Args:
        current_user_id: The member asking to settle
        sheet: Balances from compute_balances()
        participants: The group's participants, in roster order
        counterparty_id: Optional specific member to settle with

    Returns:
        A suggestion, or None when there is nobody to settle with or the
        amount rounds to zero

    Raises:
        DataIntegrityError: If counterparty_id is not a participant
    """
    if counterparty_id is None:
        proposal = _suggest_settle_up(current_user_id, sheet, participants)
    else:
        proposal = _suggest_settle_with(
            current_user_id, counterparty_id, sheet, participants
        )

    if proposal is None:
        return None

    from_user_id, to_user_id, amount = proposal
    amount = quantize_amount(amount)
    if amount == ZERO:
        logger.debug(f"Nothing to settle for {current_user_id}")
        return None

    return SettlementSuggestion(
        from_user_id=from_user_id, to_user_id=to_user_id, amount=amount
    )

"""Interactive UI components for choosing whom to settle with."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..models import SettlementSuggestion, User

logger = logging.getLogger(__name__)


def member_label(user: User) -> str:
    return f"{user.name} (@{user.username})"


class MemberCompleter(Completer):
    """Fuzzy search completer for group members."""

    def __init__(self, members: list[User]):
        """Initialize the completer with the selectable members."""
        self.members = members
        self.label_to_id = {member_label(user): user.id for user in members}

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.label_to_id:
            if not query:
                yield Completion(text=label, start_position=0, display=label)
            elif self._fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label, start_position=-len(document.text), display=label
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="srh" matches "Sarah Miller (@sarah)"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def select_member_interactive(
    members: list[User], balances: dict[str, str] | None = None
) -> str | None:
    """
    Interactive member selection with fuzzy search.

    Args:
        members: Members to choose from (the current user excluded)
        balances: Optional formatted balance per user id, shown as a hint

    Returns:
        Selected user ID, or None to cancel
    """
    print("\n🤝 Settle with whom?")
    if balances:
        for user in members:
            print(f"   {member_label(user)}: {balances.get(user.id, '0.00')}")
    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt("Member: ", complete_while_typing=True)

            if not result:
                return None

            user_id = completer.label_to_id.get(result)
            if user_id:
                logger.info(f"User selected member: {user_id}")
                return user_id

            print("❌ Unknown member. Please select from the list or press Tab to complete.")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return None


def confirm_settlement(suggestion: SettlementSuggestion, names: dict[str, str]) -> bool:
    """
    Simple yes/no confirmation before recording a settlement.

    Args:
        suggestion: The proposed payment
        names: Display name per user id

    Returns:
        True if confirmed, False otherwise
    """
    payer = names.get(suggestion.from_user_id, suggestion.from_user_id)
    payee = names.get(suggestion.to_user_id, suggestion.to_user_id)

    print(f"\n💸 {payer} pays {payee} ${suggestion.amount}")

    response = input("   Record this settlement? [y/N] ").strip().lower()

    return response in ("y", "yes")

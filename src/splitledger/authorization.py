"""Role-based access rules for ledger resources.

Permissions are a table of rules rather than role classes. A rule grants
some roles some actions on one resource kind, subject to a condition on
the concrete resource.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from .exceptions import AuthorizationError
from .models import Group, Role, User

logger = logging.getLogger(__name__)

Action = Literal["create", "read", "update", "delete", "manage"]
ResourceKind = Literal["User", "Group", "Expense", "Settlement"]


@dataclass(frozen=True)
class Resource:
    """What an action targets: a kind plus the context needed by conditions."""

    kind: ResourceKind
    group: Group | None = None
    owner_id: str | None = None


Condition = Callable[[User, Resource], bool]


def always(user: User, resource: Resource) -> bool:
    return True


def is_participant(user: User, resource: Resource) -> bool:
    return resource.group is not None and user.id in resource.group.participants


def is_self(user: User, resource: Resource) -> bool:
    return resource.owner_id == user.id


@dataclass(frozen=True)
class Rule:
    roles: frozenset[Role]
    actions: frozenset[Action]
    kind: ResourceKind | Literal["all"]
    condition: Condition = always


EVERYONE: frozenset[Role] = frozenset({"member", "viewer"})
MEMBERS: frozenset[Role] = frozenset({"member"})

RULES: tuple[Rule, ...] = (
    Rule(frozenset({"admin"}), frozenset({"manage"}), "all"),
    Rule(EVERYONE, frozenset({"read"}), "User"),
    Rule(EVERYONE, frozenset({"read"}), "Group", is_participant),
    Rule(EVERYONE, frozenset({"read"}), "Expense", is_participant),
    Rule(EVERYONE, frozenset({"read"}), "Settlement", is_participant),
    Rule(MEMBERS, frozenset({"update"}), "User", is_self),
    Rule(MEMBERS, frozenset({"create"}), "Group"),
    Rule(MEMBERS, frozenset({"update"}), "Group", is_participant),
    Rule(
        MEMBERS,
        frozenset({"create", "update", "delete"}),
        "Expense",
        is_participant,
    ),
    Rule(MEMBERS, frozenset({"create"}), "Settlement", is_participant),
)


def can_perform(
    user: User,
    action: Action,
    resource: Resource,
    rules: tuple[Rule, ...] = RULES,
) -> bool:
    """
    Check whether a user may perform an action on a resource.

    "manage" on a rule covers every action; "all" covers every kind.

    Args:
        user: The authenticated caller
        action: What they want to do
        resource: The target, with its group for membership checks
        rules: Rule table to evaluate (defaults to RULES)

    Returns:
        True if any rule grants the action
    """
    for rule in rules:
        if user.role not in rule.roles:
            continue
        if action not in rule.actions and "manage" not in rule.actions:
            continue
        if rule.kind != "all" and rule.kind != resource.kind:
            continue
        if rule.condition(user, resource):
            return True
    return False


def require(user: User, action: Action, resource: Resource):
    """Raise AuthorizationError unless can_perform() allows the action."""
    if not can_perform(user, action, resource):
        logger.info(f"Denied {action} on {resource.kind} for user {user.id}")
        raise AuthorizationError(
            f"You don't have permission to {action} this {resource.kind.lower()}"
        )

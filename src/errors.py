"""
SceneStack — Domain Exceptions

Raised by the accounts and feed services so callers can show an actionable
message before any state changes. The visibility policy never raises; it
fails closed instead. Stale disposition directives are not errors either:
the executor resolves them by falling back to delete. Directives that cannot
be parsed at all are: the batch is left pending untouched.
"""

from __future__ import annotations

import uuid


class SceneStackError(Exception):
    """Base class for all domain errors."""


class NotFoundError(SceneStackError):
    """A user, group or watch does not exist (or is not visible to the caller)."""

    def __init__(self, entity: str, entity_id: uuid.UUID) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ValidationFailedError(SceneStackError):
    """
    A request was rejected as a whole.

    Covers disposition batches (missing/duplicate group coverage, transfer to
    a non-member or ineligible target) and failed credential checks.
    """

    def __init__(self, reason: str, group_id: uuid.UUID | None = None) -> None:
        self.reason = reason
        self.group_id = group_id
        message = reason if group_id is None else f"group {group_id}: {reason}"
        super().__init__(message)


class InvalidStateError(SceneStackError):
    """The operation is not allowed from the account's current state."""

    def __init__(self, operation: str, current_state: str, detail: str = "") -> None:
        self.operation = operation
        self.current_state = current_state
        self.detail = detail
        message = f"cannot {operation} from state {current_state}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class AccountDeletedError(InvalidStateError):
    """Login or reactivation attempted on a permanently deleted account."""

    def __init__(self, operation: str = "login") -> None:
        super().__init__(operation, "deleted", "account has been permanently deleted")


class CorruptDirectivesError(SceneStackError):
    """users.pending_group_actions holds entries that no longer parse."""

    def __init__(self, user_id: uuid.UUID, error_count: int) -> None:
        self.user_id = user_id
        self.error_count = error_count
        super().__init__(f"user {user_id} has {error_count} unreadable pending group action(s)")


class NotAGroupMemberError(SceneStackError):
    """The requesting user is not a member of the group they asked about."""

    def __init__(self, user_id: uuid.UUID, group_id: uuid.UUID) -> None:
        self.user_id = user_id
        self.group_id = group_id
        super().__init__(f"user {user_id} is not a member of group {group_id}")

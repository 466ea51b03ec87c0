"""
SceneStack — Group Disposition Directives

A directive says what happens to one owned group when its owner asks for
account deletion:

    {"action": "delete",   "group_id": ...}
    {"action": "transfer", "group_id": ..., "target_user_id": ...}

The ordered list is stored on users.pending_group_actions as JSON. Only the
accounts package serializes or parses it.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Iterable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.errors import ValidationFailedError


class DeleteDirective(BaseModel):
    """Soft-delete the group."""

    model_config = ConfigDict(frozen=True)

    action: Literal["delete"] = "delete"
    group_id: uuid.UUID


class TransferDirective(BaseModel):
    """Hand the group's ownership to an existing member."""

    model_config = ConfigDict(frozen=True)

    action: Literal["transfer"] = "transfer"
    group_id: uuid.UUID
    target_user_id: uuid.UUID


Directive = Annotated[
    Union[DeleteDirective, TransferDirective],
    Field(discriminator="action"),
]

_directive_list: TypeAdapter[list[Directive]] = TypeAdapter(list[Directive])


def parse_directives(raw: Iterable[dict[str, Any]]) -> list[Directive]:
    """
    Parse caller-supplied directive payloads.

    Raises:
        ValidationFailedError: when any entry is malformed (unknown action,
            bad UUID, transfer without a target).
    """
    try:
        return _directive_list.validate_python(list(raw))
    except ValidationError as exc:
        raise ValidationFailedError(f"malformed group action list: {exc.error_count()} error(s)") from exc


def dump_directives(directives: Iterable[Directive]) -> list[dict[str, Any]]:
    """Serialize directives for storage, order preserved."""
    return _directive_list.dump_python(list(directives), mode="json")


def load_directives(stored: list[dict[str, Any]] | None) -> list[Directive]:
    """Read directives back from users.pending_group_actions (None → [])."""
    if not stored:
        return []
    return _directive_list.validate_python(stored)

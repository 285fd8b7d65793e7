"""Owner/admin capability rules for profile rows.

Every ``ProfileStore`` call goes through ``authorize``. The caller's role is
read from the database on each check, so a revoked admin loses access on the
very next request. Anything not matched by a rule is denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from sqlalchemy.orm import Session

from app.models.profile import Profile
from app.services.errors import AuthorizationError


logger = logging.getLogger(__name__)


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    CREATE = "create"
    ISSUE = "issue"


# Columns owned by the system; a self-service write touching any of them is denied.
PROTECTED_FIELDS = frozenset({"id", "user_id", "role", "pass_id", "is_submitted", "created_at"})


@dataclass(frozen=True)
class Caller:
    user_id: int | None
    system: bool = False


# Post-authentication hook and operator scripts.
SYSTEM_CALLER = Caller(user_id=None, system=True)


def load_caller_role(db: Session, caller: Caller) -> str | None:
    if caller.user_id is None:
        return None
    return db.query(Profile.role).filter(Profile.user_id == caller.user_id).scalar()


def _deny(caller: Caller, action: Action, target_user_id: int | None, reason: str) -> AuthorizationError:
    logger.info(
        "access.denied caller=%s action=%s target=%s reason=%s",
        caller.user_id,
        action.value,
        target_user_id,
        reason,
    )
    return AuthorizationError("Access denied")


def authorize(
    db: Session,
    caller: Caller,
    action: Action,
    target_user_id: int | None,
    fields: Iterable[str] = (),
) -> None:
    if caller.system:
        return
    if caller.user_id is None:
        raise _deny(caller, action, target_user_id, "anonymous")

    is_owner = target_user_id is not None and caller.user_id == target_user_id

    if action is Action.READ:
        if is_owner:
            return
        if load_caller_role(db, caller) == "admin":
            return
        raise _deny(caller, action, target_user_id, "not owner or admin")

    if action in (Action.WRITE, Action.CREATE):
        if not is_owner:
            raise _deny(caller, action, target_user_id, "not owner")
        blocked = sorted(PROTECTED_FIELDS.intersection(fields))
        if blocked:
            raise _deny(caller, action, target_user_id, f"protected fields {blocked}")
        return

    if action is Action.ISSUE:
        if is_owner:
            return
        raise _deny(caller, action, target_user_id, "not owner")

    raise _deny(caller, action, target_user_id, "no matching rule")

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.profile import CATEGORIES, FORM_FIELDS, GENDERS, ROLES, Profile, utc_now
from app.services.access_policy import Action, Caller, authorize
from app.services.errors import (
    FormValidationError,
    InvalidTransitionError,
    PassIdConflictError,
    PersistenceError,
    ProfileLockedError,
    ProfileNotFoundError,
    StoreBusyError,
)


logger = logging.getLogger(__name__)


def _check_enums(fields: Mapping[str, Any]) -> None:
    errors: dict[str, str] = {}
    if fields.get("gender") is not None and fields["gender"] not in GENDERS:
        errors["gender"] = "Please select gender"
    if fields.get("category") is not None and fields["category"] not in CATEGORIES:
        errors["category"] = "Please select category"
    if errors:
        raise FormValidationError(errors)


class ProfileStore:
    """Persistence for registration profiles, scoped to one authenticated caller.

    Each method authorizes against the access policy before touching rows and
    commits (or rolls back) its own transaction, so a failed call never leaves
    a partial write behind.
    """

    def __init__(self, db: Session, caller: Caller) -> None:
        self.db = db
        self.caller = caller

    def _find(self, user_id: int) -> Profile | None:
        return self.db.query(Profile).filter(Profile.user_id == user_id).populate_existing().one_or_none()

    def _rollback(self, exc: SQLAlchemyError, what: str) -> PersistenceError:
        self.db.rollback()
        if isinstance(exc, OperationalError) and "database is locked" in str(exc.orig):
            logger.warning("profile_store.%s busy: %s", what, exc.orig)
            return StoreBusyError("Profile storage is busy, please retry")
        logger.error("profile_store.%s failed: %s: %s", what, type(exc).__name__, exc)
        return PersistenceError("Profile storage is unavailable")

    def get_profile(self, user_id: int) -> Profile:
        authorize(self.db, self.caller, Action.READ, user_id)
        profile = self._find(user_id)
        if profile is None:
            raise ProfileNotFoundError("Profile not found")
        return profile

    def ensure_profile(self, user_id: int, email: str | None, role: str = "user") -> Profile:
        """Create the user's profile on first authentication; no-op afterwards."""

        fields = {"role": role} if role != "user" else {}
        authorize(self.db, self.caller, Action.CREATE, user_id, fields)
        existing = self._find(user_id)
        if existing is not None:
            return existing

        self.db.add(Profile(user_id=user_id, email=email, role=role, form_step=0, is_submitted=False))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent first login created it already.
            self.db.rollback()
        except SQLAlchemyError as exc:
            raise self._rollback(exc, "ensure_profile") from exc
        else:
            logger.info("profile.created user_id=%s role=%s", user_id, role)

        created = self._find(user_id)
        if created is None:
            raise PersistenceError("Profile could not be created")
        return created

    def upsert_profile(self, user_id: int, fields: Mapping[str, Any], form_step: int) -> Profile:
        """Write form fields and advance ``form_step`` (never lowers it).

        Last write wins between sessions of the same user; ``updated_at`` is
        stamped on every call, even when the values are unchanged.
        """

        authorize(self.db, self.caller, Action.WRITE, user_id, fields.keys())
        unknown = sorted(set(fields) - set(FORM_FIELDS))
        if unknown:
            raise FormValidationError({name: "Unknown field" for name in unknown})
        _check_enums(fields)

        current = self._find(user_id)
        if current is None:
            current = self.ensure_profile(user_id, fields.get("email"))
        if current.is_submitted:
            raise ProfileLockedError()

        values: dict[Any, Any] = dict(fields)
        values["form_step"] = case((Profile.form_step < form_step, form_step), else_=Profile.form_step)
        values["updated_at"] = utc_now()
        try:
            updated = (
                self.db.query(Profile)
                .filter(Profile.user_id == user_id, Profile.is_submitted.is_(False))
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._rollback(exc, "upsert_profile") from exc

        if updated == 0:
            # Submitted from another session between the read and the write.
            raise ProfileLockedError()
        return self.get_profile(user_id)

    def assign_pass_id(self, user_id: int, candidate: str) -> Profile:
        """Atomically set ``pass_id`` and ``is_submitted`` for a reviewed profile.

        The unique constraint on ``pass_id`` decides collisions; a rejected
        candidate surfaces as ``PassIdConflictError`` with nothing committed.
        """

        authorize(self.db, self.caller, Action.ISSUE, user_id)
        try:
            updated = (
                self.db.query(Profile)
                .filter(
                    Profile.user_id == user_id,
                    Profile.pass_id.is_(None),
                    Profile.is_submitted.is_(False),
                    Profile.form_step >= 2,
                )
                .update(
                    {"pass_id": candidate, "is_submitted": True, "updated_at": utc_now()},
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise PassIdConflictError(f"Pass id {candidate} is already taken") from exc
        except SQLAlchemyError as exc:
            raise self._rollback(exc, "assign_pass_id") from exc

        profile = self.get_profile(user_id)
        if updated == 0 and not profile.is_submitted:
            raise InvalidTransitionError("Please complete all steps first")
        return profile

    def set_role(self, user_id: int, role: str) -> Profile:
        """Change a profile's role. Only the system caller passes the policy."""

        authorize(self.db, self.caller, Action.WRITE, user_id, ("role",))
        if role not in ROLES:
            raise FormValidationError({"role": f"role must be one of {', '.join(ROLES)}"})
        try:
            updated = (
                self.db.query(Profile)
                .filter(Profile.user_id == user_id)
                .update({"role": role, "updated_at": utc_now()}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._rollback(exc, "set_role") from exc
        if updated == 0:
            raise ProfileNotFoundError("Profile not found")
        logger.info("profile.role_changed user_id=%s role=%s", user_id, role)
        return self.get_profile(user_id)

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.config import is_admin_email
from app.models.profile import Profile
from app.models.user import User
from app.services.access_policy import SYSTEM_CALLER
from app.services.profile_store import ProfileStore


logger = logging.getLogger(__name__)


def on_authenticated(db: Session, user: User) -> Profile:
    """Post-authentication hook: give a first-time user an empty profile.

    Runs as the system caller, which is the only caller allowed to choose a
    role. Accounts listed in ADMIN_EMAILS start out as admins.
    """

    role = "admin" if is_admin_email(user.email) else "user"
    profile = ProfileStore(db, SYSTEM_CALLER).ensure_profile(user.id, user.email, role=role)
    logger.info("auth.authenticated user_id=%s form_step=%s", user.id, profile.form_step)
    return profile

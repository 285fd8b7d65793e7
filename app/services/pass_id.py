from __future__ import annotations

import logging
import re
import secrets
import string
import time
from typing import Callable

from app.config import settings
from app.models.profile import Profile
from app.services.errors import PassIdConflictError, StoreBusyError, UpstreamError
from app.services.profile_store import ProfileStore


logger = logging.getLogger(__name__)

PASS_ID_ALPHABET = string.ascii_uppercase + string.digits
PASS_ID_LENGTH = 6
PASS_ID_PATTERN = re.compile(r"^[A-Z0-9]{6}$")
# Lock timeouts tolerated per issuance before the busy error reaches the caller.
PASS_ID_BUSY_RETRIES = 5


def generate_candidate(length: int = PASS_ID_LENGTH, alphabet: str = PASS_ID_ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _assign(store: ProfileStore, user_id: int, candidate: str) -> Profile:
    for retry in range(1, PASS_ID_BUSY_RETRIES + 1):
        try:
            return store.assign_pass_id(user_id, candidate)
        except StoreBusyError:
            logger.info("pass_id.busy user_id=%s retry=%s", user_id, retry)
            time.sleep(0.05 * retry)
    return store.assign_pass_id(user_id, candidate)


def issue_pass_id(
    store: ProfileStore,
    user_id: int,
    *,
    generator: Callable[[], str] | None = None,
    max_attempts: int | None = None,
) -> Profile:
    """Assign a fresh pass id to the user's reviewed profile.

    Uniqueness is enforced by the database: each candidate is written with a
    conditional update and a duplicate is rejected by the unique constraint,
    after which a new candidate is drawn. There is no read-then-write window
    for two submissions to claim the same id. A write refused because the
    database was locked is retried a few times with the same candidate.
    """

    make_candidate = generator or generate_candidate
    limit = settings.pass_id_max_attempts if max_attempts is None else max_attempts

    for attempt in range(1, limit + 1):
        candidate = make_candidate()
        try:
            profile = _assign(store, user_id, candidate)
        except PassIdConflictError:
            logger.info("pass_id.collision user_id=%s attempt=%s", user_id, attempt)
            continue
        logger.info("pass_id.issued user_id=%s pass_id=%s attempts=%s", user_id, profile.pass_id, attempt)
        return profile

    logger.error("pass_id.exhausted user_id=%s attempts=%s", user_id, limit)
    raise UpstreamError("Could not issue a pass id, please retry")

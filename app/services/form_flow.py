"""Registration form state machine: Step1 -> Step2 -> Review -> Submitted.

The persisted ``form_step`` and ``is_submitted`` columns are the only source
of truth for where a user is; ``derive_state`` maps them to a flow state.
``STEP2`` is never persisted on its own: it is where a successful Step-1 save
(or going back from review) lands within a session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Mapping

from pydantic import BaseModel, ValidationError

from app.models.profile import STEP1_FIELDS, STEP2_FIELDS, Profile
from app.schemas.registration import FlowState, Step1Form, Step2Form
from app.services.errors import (
    FormValidationError,
    InvalidTransitionError,
    ProfileLockedError,
    UploadInProgressError,
    field_errors,
)
from app.services.pass_id import issue_pass_id
from app.services.pass_renderer import render_pass
from app.services.photo_storage import PhotoStorage, UploadTracker, parse_reference, uploads
from app.services.profile_store import ProfileStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlowSnapshot:
    state: FlowState
    profile: Profile
    message: str | None = None

    @property
    def read_only(self) -> bool:
        return self.state is FlowState.SUBMITTED

    @property
    def download_available(self) -> bool:
        return self.state is FlowState.SUBMITTED and bool(self.profile.pass_id)

    def step1_values(self) -> dict[str, Any]:
        return {name: getattr(self.profile, name) for name in STEP1_FIELDS}

    def step2_values(self) -> dict[str, Any]:
        return {name: getattr(self.profile, name) for name in STEP2_FIELDS}


def derive_state(profile: Profile) -> FlowState:
    if profile.is_submitted:
        return FlowState.SUBMITTED
    if (profile.form_step or 0) >= 2:
        return FlowState.REVIEW
    return FlowState.STEP1


def _validate(schema: type[BaseModel], payload: BaseModel | Mapping[str, Any]) -> BaseModel:
    if isinstance(payload, schema):
        return payload
    data = payload.model_dump(by_alias=False) if isinstance(payload, BaseModel) else dict(payload)
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError(field_errors(exc.errors())) from exc


def _editable(store: ProfileStore, user_id: int) -> Profile:
    profile = store.get_profile(user_id)
    if profile.is_submitted:
        raise ProfileLockedError()
    return profile


def resume(store: ProfileStore, user_id: int) -> FlowSnapshot:
    """Reload the persisted form so a reopened session continues where it stopped."""

    profile = store.get_profile(user_id)
    state = derive_state(profile)
    message = "Registration already submitted" if state is FlowState.SUBMITTED else None
    return FlowSnapshot(state=state, profile=profile, message=message)


def save_step1(store: ProfileStore, user_id: int, payload: Step1Form | Mapping[str, Any]) -> FlowSnapshot:
    form = _validate(Step1Form, payload)
    _editable(store, user_id)
    profile = store.upsert_profile(user_id, form.model_dump(), form_step=1)
    logger.info("registration.step1_saved user_id=%s form_step=%s", user_id, profile.form_step)
    return FlowSnapshot(state=FlowState.STEP2, profile=profile, message="Step 1 saved successfully")


def save_step2(
    store: ProfileStore,
    user_id: int,
    payload: Step2Form | Mapping[str, Any],
    *,
    storage: PhotoStorage | None = None,
    tracker: UploadTracker = uploads,
) -> FlowSnapshot:
    form = _validate(Step2Form, payload)
    current = _editable(store, user_id)
    if (current.form_step or 0) < 1:
        raise InvalidTransitionError("Please complete step 1 first")
    if tracker.is_active(user_id):
        raise UploadInProgressError()

    reference = form.photo_reference
    if reference is not None:
        parsed = parse_reference(reference)
        if parsed is None or parsed[0] != user_id:
            raise FormValidationError({"photo_reference": "Invalid photo reference"})
        if storage is not None and not storage.exists(reference):
            raise FormValidationError({"photo_reference": "Photo has not been uploaded"})

    profile = store.upsert_profile(user_id, form.model_dump(), form_step=2)
    if reference is not None and storage is not None:
        # Only now is the previous photo unreferenced.
        storage.discard_others(user_id, reference)
    logger.info("registration.step2_saved user_id=%s form_step=%s", user_id, profile.form_step)
    return FlowSnapshot(state=FlowState.REVIEW, profile=profile, message="Step 2 saved successfully")


def go_back(store: ProfileStore, user_id: int, current: FlowState) -> FlowSnapshot:
    """Step back one screen. Never touches ``form_step``."""

    profile = _editable(store, user_id)
    if current is FlowState.STEP2:
        return FlowSnapshot(state=FlowState.STEP1, profile=profile)
    if current is FlowState.REVIEW and (profile.form_step or 0) >= 2:
        return FlowSnapshot(state=FlowState.STEP2, profile=profile)
    raise InvalidTransitionError(f"Cannot go back from {current.value}")


def upload_photo(
    store: ProfileStore,
    storage: PhotoStorage,
    user_id: int,
    content_type: str | None,
    photo: bytes | BinaryIO,
    *,
    tracker: UploadTracker = uploads,
) -> str:
    """Store the user's passport photo and return its reference.

    The reference is only attached to the profile by the following Step-2
    save; while the upload runs (reading included), Step-2 saves for the same
    user are refused. A file object is read up to one byte past the size limit.
    """

    _editable(store, user_id)
    with tracker.track(user_id):
        data = photo if isinstance(photo, bytes) else photo.read(storage.max_bytes + 1)
        return storage.store(user_id, content_type, data)


def submit(
    store: ProfileStore,
    user_id: int,
    confirm: bool,
    *,
    generator: Callable[[], str] | None = None,
) -> FlowSnapshot:
    """Final, irreversible submission: issue the pass id and lock the profile.

    Form fields are not re-validated; they were validated when each step was
    saved. If issuance fails the profile stays in review and the call can be
    retried. Submitting an already submitted profile returns it unchanged.
    """

    profile = store.get_profile(user_id)
    if profile.is_submitted:
        return FlowSnapshot(state=FlowState.SUBMITTED, profile=profile, message="Registration already submitted")
    if confirm is not True:
        raise FormValidationError({"confirm": "Please confirm that the details are correct; this cannot be undone"})
    if (profile.form_step or 0) < 2:
        raise InvalidTransitionError("Please complete all steps first")

    profile = issue_pass_id(store, user_id, generator=generator)
    logger.info("registration.submitted user_id=%s pass_id=%s", user_id, profile.pass_id)
    return FlowSnapshot(
        state=FlowState.SUBMITTED,
        profile=profile,
        message=f"Registration completed successfully! Your ID: {profile.pass_id}",
    )


def build_pass_document(store: ProfileStore, user_id: int, storage: PhotoStorage | None = None) -> tuple[str, bytes]:
    profile = store.get_profile(user_id)
    if derive_state(profile) is not FlowState.SUBMITTED:
        raise InvalidTransitionError("The pass is available after final submission")
    photo_path = None
    if storage is not None and profile.photo_reference and storage.exists(profile.photo_reference):
        photo_path = storage.path_for(profile.photo_reference)
    return f"registration_pass_{profile.pass_id}.pdf", render_pass(profile, photo_path)

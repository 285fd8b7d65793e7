from __future__ import annotations

from datetime import date
from io import BytesIO

import pytest

from app.models.profile import Profile
from app.schemas.registration import FlowState
from app.services import form_flow
from app.services.errors import (
    FormValidationError,
    InvalidTransitionError,
    ProfileLockedError,
    UploadInProgressError,
)
from app.services.form_flow import derive_state
from app.services.photo_storage import UploadTracker, get_photo_storage
from tests.conftest import STEP1, STEP2


def _reviewed(store, user_id: int) -> None:
    form_flow.save_step1(store, user_id, STEP1)
    form_flow.save_step2(store, user_id, STEP2)


def test_new_profile_starts_at_step1(make_user, store_for) -> None:
    user_id = make_user("a@x.com")
    snapshot = form_flow.resume(store_for(user_id), user_id)
    assert snapshot.state is FlowState.STEP1
    assert snapshot.profile.form_step == 0
    assert snapshot.profile.is_submitted is False
    assert snapshot.profile.email == "a@x.com"


def test_step1_persists_exact_values(make_user, store_for) -> None:
    user_id = make_user("a@x.com")
    snapshot = form_flow.save_step1(store_for(user_id), user_id, STEP1)

    assert snapshot.state is FlowState.STEP2
    profile = snapshot.profile
    assert profile.form_step == 1
    assert profile.email == "a@x.com"
    assert profile.name == "Asha Rao"
    assert profile.contact == "9876543210"
    assert profile.gender == "female"
    assert profile.date_of_birth == date(2000, 1, 1)


def test_invalid_step1_leaves_profile_untouched(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)

    with pytest.raises(FormValidationError) as exc_info:
        form_flow.save_step1(store, user_id, {**STEP1, "contact": "98765"})
    assert "contact" in exc_info.value.errors

    profile = store.get_profile(user_id)
    assert profile.form_step == 0
    assert profile.name is None


@pytest.mark.parametrize(
    "override, fields",
    [
        ({"email": "not-an-email"}, {"email"}),
        ({"name": "A"}, {"name"}),
        ({"gender": "unknown"}, {"gender"}),
        ({"dob": ""}, {"dob", "date_of_birth"}),
    ],
)
def test_step1_field_errors(make_user, store_for, override, fields) -> None:
    user_id = make_user()
    with pytest.raises(FormValidationError) as exc_info:
        form_flow.save_step1(store_for(user_id), user_id, {**STEP1, **override})
    assert fields & set(exc_info.value.errors)


def test_resaving_step1_is_idempotent_but_touches_updated_at(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    first = form_flow.save_step1(store, user_id, STEP1).profile
    first_updated_at = first.updated_at

    second = form_flow.save_step1(store, user_id, STEP1).profile
    assert second.form_step == 1
    assert second.pass_id is None
    assert second.updated_at > first_updated_at


def test_step2_requires_step1(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    with pytest.raises(InvalidTransitionError):
        form_flow.save_step2(store, user_id, STEP2)
    assert store.get_profile(user_id).form_step == 0


def test_step2_moves_to_review(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    form_flow.save_step1(store, user_id, STEP1)
    snapshot = form_flow.save_step2(store, user_id, STEP2)

    assert snapshot.state is FlowState.REVIEW
    profile = snapshot.profile
    assert profile.form_step == 2
    # Step-1 data is still there next to the Step-2 fields.
    assert profile.name == "Asha Rao"
    assert (profile.age, profile.district, profile.category) == (24, "Pune", "OBC")
    assert profile.highest_qualification == "B.Sc."
    assert profile.photo_reference is None


@pytest.mark.parametrize(
    "override, field",
    [
        ({"age": 17}, "age"),
        ({"age": 101}, "age"),
        ({"district": "  "}, "district"),
        ({"category": "General"}, "category"),
        ({"highest_qualification": ""}, "highest_qualification"),
    ],
)
def test_step2_field_errors(make_user, store_for, override, field) -> None:
    user_id = make_user()
    store = store_for(user_id)
    form_flow.save_step1(store, user_id, STEP1)

    with pytest.raises(FormValidationError) as exc_info:
        form_flow.save_step2(store, user_id, {**STEP2, **override})
    assert field in exc_info.value.errors
    assert store.get_profile(user_id).form_step == 1


def test_resaving_step1_after_review_does_not_lower_form_step(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    _reviewed(store, user_id)

    profile = form_flow.save_step1(store, user_id, {**STEP1, "name": "Asha R. Rao"}).profile
    assert profile.form_step == 2
    assert profile.name == "Asha R. Rao"
    assert derive_state(profile) is FlowState.REVIEW


def test_go_back_never_changes_form_step(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    _reviewed(store, user_id)

    to_step2 = form_flow.go_back(store, user_id, FlowState.REVIEW)
    assert to_step2.state is FlowState.STEP2
    to_step1 = form_flow.go_back(store, user_id, FlowState.STEP2)
    assert to_step1.state is FlowState.STEP1
    assert store.get_profile(user_id).form_step == 2

    with pytest.raises(InvalidTransitionError):
        form_flow.go_back(store, user_id, FlowState.STEP1)


def test_resume_reloads_saved_values(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    form_flow.save_step1(store, user_id, STEP1)

    snapshot = form_flow.resume(store, user_id)
    assert snapshot.state is FlowState.STEP1
    assert snapshot.step1_values()["name"] == "Asha Rao"
    assert snapshot.step1_values()["date_of_birth"] == date(2000, 1, 1)


def test_submit_requires_review_and_confirmation(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    form_flow.save_step1(store, user_id, STEP1)

    with pytest.raises(InvalidTransitionError):
        form_flow.submit(store, user_id, confirm=True)

    form_flow.save_step2(store, user_id, STEP2)
    with pytest.raises(FormValidationError) as exc_info:
        form_flow.submit(store, user_id, confirm=False)
    assert "confirm" in exc_info.value.errors

    profile = store.get_profile(user_id)
    assert profile.is_submitted is False
    assert profile.pass_id is None


def test_submitted_profile_is_read_only(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    _reviewed(store, user_id)
    submitted = form_flow.submit(store, user_id, confirm=True).profile
    pass_id = submitted.pass_id

    with pytest.raises(ProfileLockedError):
        form_flow.save_step1(store, user_id, {**STEP1, "name": "Someone Else"})
    with pytest.raises(ProfileLockedError):
        form_flow.save_step2(store, user_id, {**STEP2, "district": "Mumbai"})
    with pytest.raises(ProfileLockedError):
        form_flow.go_back(store, user_id, FlowState.REVIEW)
    with pytest.raises(ProfileLockedError):
        store.upsert_profile(user_id, {"district": "Mumbai"}, form_step=2)

    again = form_flow.submit(store, user_id, confirm=True)
    assert again.state is FlowState.SUBMITTED
    assert again.profile.pass_id == pass_id

    profile = store.get_profile(user_id)
    assert profile.name == "Asha Rao"
    assert profile.district == "Pune"
    assert profile.pass_id == pass_id

    snapshot = form_flow.resume(store, user_id)
    assert snapshot.state is FlowState.SUBMITTED
    assert snapshot.read_only is True
    assert snapshot.download_available is True


def test_derive_state() -> None:
    assert derive_state(Profile(form_step=0, is_submitted=False)) is FlowState.STEP1
    assert derive_state(Profile(form_step=1, is_submitted=False)) is FlowState.STEP1
    assert derive_state(Profile(form_step=2, is_submitted=False)) is FlowState.REVIEW
    assert derive_state(Profile(form_step=2, is_submitted=True, pass_id="AB12CD")) is FlowState.SUBMITTED


def test_step2_waits_for_running_upload(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    form_flow.save_step1(store, user_id, STEP1)
    tracker = UploadTracker()

    with tracker.track(user_id):
        with pytest.raises(UploadInProgressError):
            form_flow.save_step2(store, user_id, STEP2, tracker=tracker)
        with pytest.raises(UploadInProgressError):
            with tracker.track(user_id):
                pass

    assert form_flow.save_step2(store, user_id, STEP2, tracker=tracker).profile.form_step == 2


def test_step2_accepts_only_own_uploaded_photo(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    storage = get_photo_storage()
    form_flow.save_step1(store, user_id, STEP1)

    with pytest.raises(FormValidationError):
        form_flow.save_step2(store, user_id, {**STEP2, "photo_reference": f"photos/{user_id + 1}.jpg"}, storage=storage)
    with pytest.raises(FormValidationError):
        form_flow.save_step2(store, user_id, {**STEP2, "photo_reference": f"photos/{user_id}.jpg"}, storage=storage)

    reference = form_flow.upload_photo(store, storage, user_id, "image/jpeg", b"\xff\xd8\xff fake jpeg")
    assert reference == f"photos/{user_id}.jpg"
    profile = form_flow.save_step2(store, user_id, {**STEP2, "photo_reference": reference}, storage=storage).profile
    assert profile.photo_reference == reference


def test_upload_rejects_unsupported_types(make_user, store_for) -> None:
    user_id = make_user()
    with pytest.raises(FormValidationError) as exc_info:
        form_flow.upload_photo(store_for(user_id), get_photo_storage(), user_id, "application/pdf", b"%PDF")
    assert "photo" in exc_info.value.errors


def test_reupload_with_other_type_keeps_attached_photo(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    storage = get_photo_storage()
    form_flow.save_step1(store, user_id, STEP1)

    jpg = form_flow.upload_photo(store, storage, user_id, "image/jpeg", b"\xff\xd8\xff fake jpeg")
    form_flow.save_step2(store, user_id, {**STEP2, "photo_reference": jpg}, storage=storage)

    png = form_flow.upload_photo(store, storage, user_id, "image/png", b"\x89PNG fake png")
    assert png == f"photos/{user_id}.png"
    assert store.get_profile(user_id).photo_reference == jpg
    assert storage.exists(jpg)

    form_flow.save_step2(store, user_id, {**STEP2, "photo_reference": png}, storage=storage)
    assert store.get_profile(user_id).photo_reference == png
    assert storage.exists(png)
    assert not storage.exists(jpg)


def test_step2_is_refused_while_upload_is_being_read(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    storage = get_photo_storage()
    tracker = UploadTracker()
    form_flow.save_step1(store, user_id, STEP1)
    refused: list[type] = []

    class SlowUpload(BytesIO):
        def read(self, size=-1):
            try:
                form_flow.save_step2(store, user_id, STEP2, storage=storage, tracker=tracker)
            except UploadInProgressError as exc:
                refused.append(type(exc))
            return super().read(size)

    reference = form_flow.upload_photo(
        store, storage, user_id, "image/jpeg", SlowUpload(b"\xff\xd8\xff fake jpeg"), tracker=tracker
    )

    assert refused == [UploadInProgressError]
    assert storage.exists(reference)
    assert store.get_profile(user_id).form_step == 1


def test_oversized_upload_is_rejected_from_file_object(make_user, store_for) -> None:
    user_id = make_user()
    store = store_for(user_id)
    storage = get_photo_storage()

    with pytest.raises(FormValidationError) as exc_info:
        form_flow.upload_photo(store, storage, user_id, "image/png", BytesIO(b"x" * (storage.max_bytes + 10)))
    assert "photo" in exc_info.value.errors
    assert not storage.exists(f"photos/{user_id}.png")

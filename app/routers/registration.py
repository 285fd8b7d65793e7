from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response

from app.models.user import User
from app.routers.dependencies import get_current_user, get_profile_store
from app.schemas.registration import (
    BackRequest,
    FlowResponse,
    PhotoUploadResponse,
    ProfileRead,
    Step1Form,
    Step2Form,
    SubmitRequest,
)
from app.services import form_flow
from app.services.form_flow import FlowSnapshot
from app.services.photo_storage import PhotoStorage, get_photo_storage
from app.services.profile_store import ProfileStore


router = APIRouter(prefix="/registration", tags=["registration"])


def _to_response(snapshot: FlowSnapshot) -> FlowResponse:
    return FlowResponse(
        state=snapshot.state,
        read_only=snapshot.read_only,
        download_available=snapshot.download_available,
        profile=ProfileRead.model_validate(snapshot.profile),
        message=snapshot.message,
    )


@router.get("", response_model=FlowResponse)
def resume_registration(
    store: ProfileStore = Depends(get_profile_store),
    current_user: User = Depends(get_current_user),
) -> FlowResponse:
    return _to_response(form_flow.resume(store, current_user.id))


@router.put("/step1", response_model=FlowResponse)
def save_step1(
    payload: Step1Form,
    store: ProfileStore = Depends(get_profile_store),
    current_user: User = Depends(get_current_user),
) -> FlowResponse:
    return _to_response(form_flow.save_step1(store, current_user.id, payload))


@router.put("/step2", response_model=FlowResponse)
def save_step2(
    payload: Step2Form,
    store: ProfileStore = Depends(get_profile_store),
    storage: PhotoStorage = Depends(get_photo_storage),
    current_user: User = Depends(get_current_user),
) -> FlowResponse:
    return _to_response(form_flow.save_step2(store, current_user.id, payload, storage=storage))


@router.post("/back", response_model=FlowResponse)
def go_back(
    payload: BackRequest,
    store: ProfileStore = Depends(get_profile_store),
    current_user: User = Depends(get_current_user),
) -> FlowResponse:
    return _to_response(form_flow.go_back(store, current_user.id, payload.current))


@router.post("/photo", response_model=PhotoUploadResponse)
def upload_photo(
    photo: UploadFile = File(...),
    store: ProfileStore = Depends(get_profile_store),
    storage: PhotoStorage = Depends(get_photo_storage),
    current_user: User = Depends(get_current_user),
) -> PhotoUploadResponse:
    reference = form_flow.upload_photo(store, storage, current_user.id, photo.content_type, photo.file)
    return PhotoUploadResponse(photo_reference=reference)


@router.post("/submit", response_model=FlowResponse)
def submit_registration(
    payload: SubmitRequest,
    store: ProfileStore = Depends(get_profile_store),
    current_user: User = Depends(get_current_user),
) -> FlowResponse:
    return _to_response(form_flow.submit(store, current_user.id, payload.confirm))


@router.get("/pass", response_class=Response)
def download_pass(
    store: ProfileStore = Depends(get_profile_store),
    storage: PhotoStorage = Depends(get_photo_storage),
    current_user: User = Depends(get_current_user),
) -> Response:
    filename, content = form_flow.build_pass_document(store, current_user.id, storage)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

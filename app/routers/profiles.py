from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from app.routers.dependencies import get_profile_store
from app.schemas.registration import ProfileRead
from app.services.photo_storage import PhotoStorage, get_photo_storage
from app.services.profile_store import ProfileStore


router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/{user_id}", response_model=ProfileRead)
def read_profile(user_id: int, store: ProfileStore = Depends(get_profile_store)) -> ProfileRead:
    return ProfileRead.model_validate(store.get_profile(user_id))


@router.get("/{user_id}/photo", response_class=FileResponse)
def read_profile_photo(
    user_id: int,
    store: ProfileStore = Depends(get_profile_store),
    storage: PhotoStorage = Depends(get_photo_storage),
) -> FileResponse:
    # Same rule as the profile row: owner or admin.
    profile = store.get_profile(user_id)
    if not profile.photo_reference or not storage.exists(profile.photo_reference):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found")
    return FileResponse(storage.path_for(profile.photo_reference))

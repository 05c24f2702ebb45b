from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter

from clipforge.common.error_envelope import not_found_error
from clipforge.media.models import MediaAsset, MediaKind, MediaRegisterRequest
from clipforge.media.service import get_media_service

router = APIRouter(prefix="/media", tags=["media"])


@router.post("/assets", response_model=MediaAsset)
def register_asset(req: MediaRegisterRequest):
    return get_media_service().register(req)


@router.get("/assets", response_model=List[MediaAsset])
def list_assets(kind: Optional[MediaKind] = None):
    return get_media_service().list_assets(kind)


@router.get("/assets/{asset_id}", response_model=MediaAsset)
def get_asset(asset_id: str):
    asset = get_media_service().get_asset(asset_id)
    if not asset:
        not_found_error("media", asset_id)
    return asset

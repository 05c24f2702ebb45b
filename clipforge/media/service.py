from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from clipforge.media.models import MediaAsset, MediaKind, MediaRegisterRequest

logger = logging.getLogger(__name__)


class MediaService:
    """The project's media library.

    Assets are metadata only; ``source_uri`` is handed to ffmpeg untouched at
    render time, so nothing here opens or probes files.
    """

    def __init__(self) -> None:
        self._assets: Dict[str, MediaAsset] = {}
        self._lock = threading.Lock()

    def register(self, req: MediaRegisterRequest) -> MediaAsset:
        asset = MediaAsset(**req.model_dump())
        with self._lock:
            self._assets[asset.id] = asset
        logger.debug("registered %s asset %s (%s)", asset.kind, asset.id, asset.source_uri)
        return asset

    def get_asset(self, asset_id: str) -> Optional[MediaAsset]:
        return self._assets.get(asset_id)

    def list_assets(self, kind: Optional[MediaKind] = None) -> List[MediaAsset]:
        assets = [a for a in self._assets.values() if kind is None or a.kind == kind]
        return sorted(assets, key=lambda a: a.created_at)

    def delete_asset(self, asset_id: str) -> None:
        # Clips keep referencing the id; the compiler reports them as missing.
        with self._lock:
            removed = self._assets.pop(asset_id, None)
        if removed is not None:
            logger.debug("removed asset %s", asset_id)

    def library(self) -> Dict[str, MediaAsset]:
        """Snapshot of the library keyed by asset id, as the compiler consumes it."""
        with self._lock:
            return dict(self._assets)


_default_service: Optional[MediaService] = None


def get_media_service() -> MediaService:
    global _default_service
    if _default_service is None:
        _default_service = MediaService()
    return _default_service


def set_media_service(service: Optional[MediaService]) -> None:
    global _default_service
    _default_service = service

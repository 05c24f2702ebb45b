import pytest
from pydantic import ValidationError

from clipforge.media.models import MediaAsset, MediaRegisterRequest
from clipforge.media.service import MediaService
from clipforge.video_timeline.tests.helpers import make_client


def _req(name, kind="video", duration=5.0):
    return MediaRegisterRequest(name=name, kind=kind, source_uri=f"/media/{name}", duration=duration)


def test_register_and_library():
    service = MediaService()
    clip = service.register(_req("clip"))
    song = service.register(_req("song", kind="audio", duration=90.0))
    assert service.get_asset(clip.id) == clip
    assert [a.id for a in service.list_assets("audio")] == [song.id]
    assert set(service.library()) == {clip.id, song.id}
    service.delete_asset(clip.id)
    assert service.get_asset(clip.id) is None


def test_timeline_duration_defaults():
    image = MediaAsset(name="still", kind="image", source_uri="/media/still.png")
    assert image.timeline_duration == 5.0
    assert MediaAsset(name="v", kind="video", source_uri="/v.mp4", duration=12.0).timeline_duration == 12.0


def test_negative_duration_rejected():
    with pytest.raises(ValidationError):
        _req("bad", duration=-1.0)


def test_media_routes():
    client = make_client()
    resp = client.post(
        "/media/assets", json={"name": "intro", "kind": "video", "source_uri": "/media/intro.mp4", "duration": 3.0}
    )
    assert resp.status_code == 200
    asset_id = resp.json()["id"]
    assert client.get(f"/media/assets/{asset_id}").json()["name"] == "intro"
    assert [a["id"] for a in client.get("/media/assets", params={"kind": "video"}).json()] == [asset_id]
    assert client.get("/media/assets", params={"kind": "audio"}).json() == []

    missing = client.get("/media/assets/nope")
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"]["code"] == "media.not_found"

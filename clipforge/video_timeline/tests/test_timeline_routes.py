import pytest

from clipforge.video_timeline.tests.helpers import make_client


@pytest.fixture
def client():
    return make_client()


def _register(client, name="clip", kind="video", duration=10.0):
    resp = client.post(
        "/media/assets",
        json={"name": name, "kind": kind, "source_uri": f"/media/{name}.mp4", "duration": duration},
    )
    assert resp.status_code == 200
    return resp.json()["id"]


def _project_with_clip(client):
    media_id = _register(client)
    pid = client.post("/video/timelines", json={"name": "Demo"}).json()["project_id"]
    state = client.post(f"/video/timelines/{pid}/tracks", json={"kind": "video"}).json()
    track_id = state["timeline"]["tracks"][0]["id"]
    state = client.post(
        f"/video/timelines/{pid}/clips",
        json={"track_id": track_id, "media_id": media_id, "start_time": 0.0},
    ).json()
    clip_id = state["timeline"]["tracks"][0]["clips"][0]["id"]
    return pid, track_id, clip_id


def test_create_timeline(client):
    resp = client.post("/video/timelines", json={"name": "Demo", "aspect_ratio": "9:16"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["timeline"]["project_name"] == "Demo"
    assert body["timeline"]["aspect_ratio"] == "9:16"
    assert body["duration"] == 0.0
    assert not body["can_undo"]


def test_add_clip_and_split(client):
    pid, _, clip_id = _project_with_clip(client)
    resp = client.post(f"/video/timelines/{pid}/clips/{clip_id}/split", json={"time": 4.0})
    assert resp.status_code == 200
    clips = resp.json()["timeline"]["tracks"][0]["clips"]
    assert [round(c["start_time"], 3) for c in clips] == [0.0, 4.0]
    assert resp.json()["duration"] == pytest.approx(10.0)


def test_detach_audio_then_undo(client):
    pid, _, clip_id = _project_with_clip(client)
    state = client.post(f"/video/timelines/{pid}/clips/{clip_id}/detach-audio").json()
    kinds = [t["kind"] for t in state["timeline"]["tracks"]]
    assert kinds == ["video", "audio"]
    assert state["timeline"]["tracks"][0]["clips"][0]["detached_audio_clip_id"]

    state = client.post(f"/video/timelines/{pid}/undo").json()
    assert [t["kind"] for t in state["timeline"]["tracks"]] == ["video"]
    assert state["can_redo"]


def test_move_snaps_and_avoids_collisions(client):
    pid, track_id, clip_id = _project_with_clip(client)
    media_id = _register(client, name="second", duration=4.0)
    state = client.post(
        f"/video/timelines/{pid}/clips",
        json={"track_id": track_id, "media_id": media_id, "start_time": 20.0},
    ).json()
    second = [c for c in state["timeline"]["tracks"][0]["clips"] if c["id"] != clip_id][0]

    state = client.post(
        f"/video/timelines/{pid}/clips/{second['id']}/move",
        json={"track_id": track_id, "start_time": 10.1},
    ).json()
    moved = [c for c in state["timeline"]["tracks"][0]["clips"] if c["id"] == second["id"]][0]
    assert moved["start_time"] == 10.0

    state = client.post(
        f"/video/timelines/{pid}/clips/{second['id']}/move",
        json={"track_id": track_id, "start_time": 3.0, "snap": False},
    ).json()
    moved = [c for c in state["timeline"]["tracks"][0]["clips"] if c["id"] == second["id"]][0]
    assert moved["start_time"] == 10.0


def test_transition_and_filter_endpoints(client):
    pid, _, clip_id = _project_with_clip(client)
    state = client.put(
        f"/video/timelines/{pid}/clips/{clip_id}/transitions",
        json={"type": "dissolve", "duration": 0.0, "position": "end"},
    ).json()
    transition = state["timeline"]["transitions"][0]
    assert (transition["type"], transition["position"], transition["duration"]) == ("dissolve", "end", 0.1)

    state = client.put(f"/video/timelines/{pid}/clips/{clip_id}/filter", json={"brightness": 250}).json()
    assert state["timeline"]["filters"][0]["brightness"] == 100

    state = client.delete(f"/video/timelines/{pid}/clips/{clip_id}").json()
    assert state["timeline"]["transitions"] == []
    assert state["timeline"]["filters"] == []


def test_text_overlay_endpoints(client):
    pid = client.post("/video/timelines", json={}).json()["project_id"]
    state = client.post(f"/video/timelines/{pid}/text-overlays", json={"text": "Title"}).json()
    overlay_id = state["timeline"]["text_overlays"][0]["id"]
    state = client.patch(
        f"/video/timelines/{pid}/text-overlays/{overlay_id}", json={"text": "Renamed", "duration": 2.0}
    ).json()
    overlay = state["timeline"]["text_overlays"][0]
    assert (overlay["text"], overlay["duration"]) == ("Renamed", 2.0)
    assert state["duration"] == 2.0


def test_invalid_edit_returns_envelope(client):
    pid, _, clip_id = _project_with_clip(client)
    resp = client.patch(f"/video/timelines/{pid}/clips/{clip_id}", json={"crop": {"x": "wide"}})
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"]["code"] == "video_timeline.invalid_edit"


def test_missing_resources_return_404(client):
    resp = client.get("/video/timelines/nope")
    assert resp.status_code == 404
    assert resp.json()["detail"]["error"]["code"] == "timeline.not_found"

    pid = client.post("/video/timelines", json={}).json()["project_id"]
    resp = client.post(f"/video/timelines/{pid}/clips", json={"track_id": "t", "media_id": "missing"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["error"]["code"] == "media.not_found"

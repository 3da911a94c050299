import numpy as np
import pytest
from fastapi.testclient import TestClient

from roomscan.api.main import app
from roomscan.api.services import state

ROOM = {
    "x_min": {"x": -2.0, "y": 1.0, "z": 0.0},
    "x_max": {"x": 2.0, "y": 1.0, "z": 0.0},
    "z_min": {"x": 0.0, "y": 1.0, "z": 1.5},
    "z_max": {"x": 0.0, "y": 1.0, "z": -1.5},
    "y_floor": {"x": 0.0, "y": 0.0, "z": 0.0},
    "y_ceil": {"x": 0.0, "y": 2.5, "z": 0.0},
}


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("RSC_CONFIG", str(tmp_path / "missing.yml"))
    monkeypatch.setattr(state, "_settings", None)
    monkeypatch.setattr(state, "_session", None)
    with TestClient(app) as c:
        yield c


def test_health_endpoint(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_config_roundtrip(client):
    res = client.get("/config")
    assert res.status_code == 200
    assert res.json()["confidence"] == 0.3

    session = state.get_session()
    res = client.post("/config", json={"confidence": 0.5, "merge_distance_m": 0.3})
    assert res.status_code == 200
    data = res.json()
    assert data["confidence"] == 0.5
    assert data["detect_every_n"] == 1
    assert state.get_session() is not session
    assert state.get_session().tracker.merge_distance == 0.3


def test_config_patches_accumulate(client):
    assert client.post("/config", json={"confidence": 0.5}).status_code == 200
    res = client.post("/config", json={"nms_iou": 0.6})
    assert res.status_code == 200
    data = res.json()
    assert data["confidence"] == 0.5
    assert data["nms_iou"] == 0.6
    assert client.get("/config").json()["confidence"] == 0.5


def test_config_validation(client):
    assert client.post("/config", json={"confidence": 1.2}).status_code == 422
    assert client.post("/config", json={"image_rotation": 45}).status_code == 422
    res = client.post("/config", json={"depth_min_m": 5.0, "depth_max_m": 2.0})
    assert res.status_code == 422
    assert client.get("/config").json()["depth_max_m"] == 10.0


def test_room_frame_and_local_coordinates(client):
    assert client.post("/room/local", json={"points": [{"x": 0, "y": 0, "z": 0}]}).status_code == 409

    res = client.post("/room/frame", json=ROOM)
    assert res.status_code == 200
    data = res.json()
    assert data["validation"]["ok"] is True
    assert data["extent"]["width"] == pytest.approx(4.0, abs=1e-4)
    assert data["extent"]["depth"] == pytest.approx(3.0, abs=1e-4)
    assert data["frame"]["vy"]["y"] == pytest.approx(1.0, abs=1e-4)

    origin_y = data["frame"]["origin"]["y"]
    res = client.post("/room/local", json={"points": [{"x": 1.0, "y": origin_y, "z": -1.0}]})
    assert res.status_code == 200
    assert res.json()["points"][0] == pytest.approx([1.0, 0.0, 1.0], abs=1e-5)


def test_rejected_room_is_not_stored(client):
    narrow = dict(ROOM, x_max={"x": -1.9, "y": 1.0, "z": 0.0})
    res = client.post("/room/frame", json=narrow)
    assert res.status_code == 200
    validation = res.json()["validation"]
    assert validation["ok"] is False
    assert validation["reason"] == "width_too_short"
    assert client.post("/room/local", json={"points": []}).status_code == 409


def test_room_local_with_explicit_frame(client):
    frame = {
        "origin": {"x": 1.0, "y": 0.0, "z": 0.0},
        "vx": {"x": 1.0, "y": 0.0, "z": 0.0},
        "vy": {"x": 0.0, "y": 1.0, "z": 0.0},
        "vz": {"x": 0.0, "y": 0.0, "z": 1.0},
    }
    res = client.post("/room/local", json={"frame": frame, "points": [{"x": 3, "y": 2, "z": 1}]})
    assert res.status_code == 200
    assert res.json()["points"] == [[2.0, 2.0, 1.0]]


def test_room_size_from_labels(client):
    measures = [
        {"label": "W", "a": {"x": 0, "y": 0, "z": 0}, "b": {"x": 4, "y": 0, "z": 0}},
        {"label": "depth", "a": {"x": 0, "y": 0, "z": 0}, "b": {"x": 0, "y": 0, "z": 3}},
        {"label": "높이", "a": {"x": 0, "y": 0, "z": 0}, "b": {"x": 0, "y": 2.5, "z": 0}},
    ]
    res = client.post("/room/size", json={"measures": measures})
    assert res.status_code == 200
    assert res.json()["extent"] == {"width": 4.0, "depth": 3.0, "height": 2.5}

    res = client.post("/room/size", json={"measures": measures[:1]})
    assert res.json()["extent"] is None
    assert res.json()["measures"] == {"W": 4.0}


def test_decode_endpoint(client):
    tensor = np.zeros((6, 2), dtype=np.float32)
    tensor[:, 0] = [0.5, 0.5, 0.2, 0.2, 0.9, 0.0]
    tensor[:, 1] = [0.5, 0.5, 0.2, 0.2, 0.1, 0.2]
    res = client.post("/detections/decode", json={"tensor": tensor.tolist(), "labels": ["speaker", "tv"]})
    assert res.status_code == 200
    boxes = res.json()["boxes"]
    assert len(boxes) == 1
    assert boxes[0]["class_name"] == "speaker"


def test_decode_rejects_ragged_tensor(client):
    res = client.post("/detections/decode", json={"tensor": [[1, 2], [3]]})
    assert res.status_code == 422


def test_speaker_tracking_flow(client):
    res = client.post(
        "/speakers/observe",
        json={"positions": [{"x": 0, "y": 1, "z": -2}, {"x": 1, "y": 1, "z": -2}], "timestamp_ns": 1},
    )
    assert res.status_code == 200
    assert res.json() == {"ids": [0, 1], "removed": []}

    res = client.post(
        "/speakers/observe",
        json={"positions": [{"x": 0.05, "y": 1, "z": -2}], "timestamp_ns": 2},
    )
    assert res.json()["ids"] == [0]

    speakers = client.get("/speakers").json()
    assert [s["id"] for s in speakers] == [0, 1]
    assert speakers[0]["local"] is None

    client.post("/room/frame", json=ROOM)
    speakers = client.get("/speakers").json()
    assert speakers[0]["local"] is not None

    assert client.delete("/speakers").status_code == 200
    assert client.get("/speakers").json() == []


def test_stale_speakers_are_removed_on_observe(client):
    client.post("/speakers/observe", json={"positions": [{"x": 0, "y": 0, "z": 0}], "timestamp_ns": 0})
    res = client.post(
        "/speakers/observe",
        json={"positions": [{"x": 5, "y": 0, "z": 0}], "timestamp_ns": 4_000_000_000},
    )
    assert res.json() == {"ids": [1], "removed": [0]}


def test_observe_validation(client):
    res = client.post("/speakers/observe", json={"positions": [], "timestamp_ns": -1})
    assert res.status_code == 422

"""
Tests for dashboard.app - JSON API routes over the edit controller
"""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from agent.byte_source import MemoryBlob
from app.controller import EditController
from dashboard.app import build_app
from dashboard.config import Config


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        base_dir=tmp_path,
        host="127.0.0.1",
        port=8766,
        pane_width=16,
        max_length=1024,
        length_step=1024,
        max_upload_mb=1,
    )


@pytest.fixture
def app(controller: EditController, cfg: Config):
    app = build_app(controller, cfg)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestDashboardRoutes:
    """Tests for the API routes"""

    def test_ping(self, client):
        r = client.get("/api/ping")
        assert r.status_code == 200
        assert r.get_json() == {"ok": True, "sources": 0}

    def test_upload_and_state(self, client):
        r = client.post(
            "/api/sources",
            data={
                "file": [
                    (io.BytesIO(b"\x01\x02\x03"), "a.bin"),
                    (io.BytesIO(b"\x01\xff\x03"), "b.bin"),
                ]
            },
            content_type="multipart/form-data",
        )
        assert r.status_code == 201
        assert r.get_json()["ids"] == [1, 2]

        state = client.get("/api/state?pane_width=2").get_json()
        assert [s["name"] for s in state["sources"]] == ["a.bin", "b.bin"]
        assert state["diff"]["diff_sets"] == [[1]]
        assert state["diff"]["lines_per_segment"] == [2]

    def test_state_rejects_bad_pane_width(self, client):
        r = client.get("/api/state?pane_width=0")
        assert r.status_code == 400
        assert r.get_json()["ok"] is False

    def test_state_rejects_non_numeric_pane_width(self, client):
        """Test that an unparseable pane_width is an error, not the configured default"""
        r = client.get("/api/state?pane_width=abc")
        assert r.status_code == 400
        body = r.get_json()
        assert body["ok"] is False
        assert "pane_width" in body["error"]

    def test_state_uses_configured_pane_width_by_default(self, client):
        state = client.get("/api/state").get_json()
        assert state["diff"]["pane_width"] == 16

    def test_add_by_path(self, client, tmp_path: Path):
        f = tmp_path / "disk.bin"
        f.write_bytes(b"hello")
        r = client.post("/api/sources", json={"path": str(f)})
        assert r.status_code == 201

    def test_add_requires_file_or_path(self, client, tmp_path: Path):
        assert client.post("/api/sources", json={}).status_code == 400
        r = client.post("/api/sources", json={"path": str(tmp_path / "missing.bin")})
        assert r.status_code == 400

    def test_remove_and_unknown(self, client, controller):
        src = controller.add_source(MemoryBlob("a.bin", b"abc"))
        assert client.delete(f"/api/sources/{src.id}").status_code == 200
        r = client.delete(f"/api/sources/{src.id}")
        assert r.status_code == 404

    def test_visibility(self, client, controller):
        src = controller.add_source(MemoryBlob("a.bin", b"abc"))
        r = client.post(f"/api/sources/{src.id}/visibility", json={"visible": False})
        assert r.status_code == 200
        assert not src.visible
        bad = client.post(f"/api/sources/{src.id}/visibility", json={"visible": "no"})
        assert bad.status_code == 400

    def test_boundary_add_remove(self, client, controller):
        src = controller.add_source(MemoryBlob("a.bin", bytes(10)))
        r = client.post(f"/api/sources/{src.id}/boundaries", json={"offset": 4})
        assert r.get_json()["boundaries"] == [4]
        r = client.delete(f"/api/sources/{src.id}/boundaries", json={"offset": 4})
        assert r.get_json()["boundaries"] == []
        bad = client.post(f"/api/sources/{src.id}/boundaries", json={"offset": "4"})
        assert bad.status_code == 400

    def test_bulk_boundaries(self, client, controller):
        src = controller.add_source(MemoryBlob("a.bin", bytes(10)))
        r = client.put("/api/boundaries", data='{"a.bin": [3, 6]}')
        assert r.get_json() == {"ok": True, "changed": True}
        assert src.boundaries == [3, 6]
        assert json.loads(client.get("/api/boundaries").data) == {"a.bin": [3, 6]}

        bad = client.put("/api/boundaries", data="{oops")
        assert bad.status_code == 400
        assert src.boundaries == [3, 6]
        assert "X-Segdiff-Warning" not in client.get("/api/boundaries").headers

    def test_bulk_export_warns_on_shared_names(self, client, controller):
        controller.add_source(MemoryBlob("x.bin", bytes(10)))
        controller.add_source(MemoryBlob("x.bin", bytes(10)))
        r = client.get("/api/boundaries")
        assert r.status_code == 200
        assert "x.bin" in r.headers["X-Segdiff-Warning"]

    def test_length_cap(self, client, controller):
        src = controller.add_source(MemoryBlob("a.bin", bytes(5000)))
        r = client.post("/api/length-cap", json={})
        assert r.get_json()["max_length"] == 2048
        assert src.length == 2048
        r = client.post("/api/length-cap", json={"cap": 100})
        assert r.status_code == 400

    def test_toggle_route(self, client, controller):
        src = controller.add_source(MemoryBlob("a.bin", bytes(10)))
        r = client.post(f"/api/sources/{src.id}/toggle", json={"segment": 0, "position": 4})
        assert r.get_json()["action"] == "split"
        r = client.post(f"/api/sources/{src.id}/toggle", json={"segment": 1, "position": 0})
        assert r.get_json()["action"] == "merge"
        assert src.boundaries == []
        r = client.post(f"/api/sources/{src.id}/toggle", json={"segment": 0, "position": 0})
        assert r.status_code == 400


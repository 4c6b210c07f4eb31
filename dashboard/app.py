# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: small flask JSON API over the edit controller. a renderer (browser page, notebook, anything that
speaks HTTP) polls /api/state for sources, boundaries and mismatch sets, and calls the edit endpoints
to change them. nothing here computes a diff, every route is a thin call into EditController.

routes:
- GET    /api/ping                         liveness
- GET    /api/state?pane_width=N           full snapshot (sources, segment lengths, mismatch sets, lines)
- POST   /api/sources                      add files (multipart "file" uploads or JSON {"path": ...})
- DELETE /api/sources/<id>                 remove a source
- POST   /api/sources/<id>/visibility      {"visible": bool}
- POST   /api/sources/<id>/boundaries      {"offset": int}   add a boundary
- DELETE /api/sources/<id>/boundaries      {"offset": int}   remove a boundary
- POST   /api/sources/<id>/toggle          {"segment": int, "position": int}   split/merge gesture
- GET    /api/boundaries                   bulk payload, name -> boundaries
- PUT    /api/boundaries                   replace from raw JSON text, all or nothing
- POST   /api/length-cap                   {"cap": int} optional, default is one step
"""

from __future__ import annotations

# --- standard library ---
import logging
import os
from collections.abc import Callable
from functools import wraps
from typing import Any, cast

# --- third-party ---
from flask import Flask, jsonify, request

# --- local/project imports ---
from agent.byte_source import MemoryBlob, PathBlob
from app.controller import EditController, InvalidBoundaryInput, UnknownSource
from dashboard.config import Config, load_config

# single waitress optional block
try:
    from waitress import serve as _serve  # type: ignore[import-untyped]

    HAVE_WAITRESS = True
except Exception:
    HAVE_WAITRESS = False
    _serve = None  # type: ignore

log = logging.getLogger("segdiff.dashboard")


# decorator that turns controller errors into JSON error payloads
def api_errors(f: Callable) -> Callable:
    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except UnknownSource as e:
            return jsonify({"ok": False, "error": f"unknown source {e.args[0]}"}), 404
        except (InvalidBoundaryInput, ValueError) as e:
            return jsonify({"ok": False, "error": str(e)}), 400

    return decorated_function


def _body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return cast(dict[str, Any], body) if isinstance(body, dict) else {}


def _int_field(body: dict[str, Any], key: str) -> int:
    value = body.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"missing or non-integer {key!r}")
    return value


# ---------------- Flask app build ----------------
def build_app(controller: EditController, cfg: Config | None = None) -> Flask:
    cfg = cfg or load_config()
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = cfg.max_upload_mb * 1024 * 1024

    @app.get("/api/ping")
    def ping():
        return jsonify({"ok": True, "sources": len(controller.sources)})

    @app.get("/api/state")
    @api_errors
    def api_state():
        raw = request.args.get("pane_width")
        try:
            pane_width = cfg.pane_width if raw is None else int(raw)
        except ValueError:
            raise ValueError(f"pane_width must be a positive integer, got {raw!r}") from None
        if pane_width <= 0:
            raise ValueError("pane_width must be a positive integer")
        return jsonify(controller.snapshot(pane_width))

    @app.post("/api/sources")
    @api_errors
    def api_sources_add():
        added = []
        # multipart uploads first, several files may come in one request
        for upload in request.files.getlist("file"):
            name = upload.filename or "upload.bin"
            added.append(controller.add_source(MemoryBlob(name, upload.read())))
        if not added:
            path = str(_body().get("path") or "").strip()
            if not path:
                return jsonify({"ok": False, "error": "missing file or path"}), 400
            if not os.path.isfile(path):
                return jsonify({"ok": False, "error": f"not a file: {path}"}), 400
            added.append(controller.add_source(PathBlob(path)))
        return jsonify({"ok": True, "ids": [s.id for s in added]}), 201

    @app.delete("/api/sources/<int:source_id>")
    @api_errors
    def api_sources_delete(source_id: int):
        controller.remove_source(source_id)
        return jsonify({"ok": True})

    @app.post("/api/sources/<int:source_id>/visibility")
    @api_errors
    def api_visibility(source_id: int):
        visible = _body().get("visible")
        if not isinstance(visible, bool):
            raise ValueError("missing or non-boolean 'visible'")
        controller.set_visibility(source_id, visible)
        return jsonify({"ok": True})

    @app.post("/api/sources/<int:source_id>/boundaries")
    @api_errors
    def api_boundary_add(source_id: int):
        controller.add_boundary(source_id, _int_field(_body(), "offset"))
        return jsonify({"ok": True, "boundaries": controller.get(source_id).boundaries})

    @app.delete("/api/sources/<int:source_id>/boundaries")
    @api_errors
    def api_boundary_remove(source_id: int):
        controller.remove_boundary(source_id, _int_field(_body(), "offset"))
        return jsonify({"ok": True, "boundaries": controller.get(source_id).boundaries})

    @app.post("/api/sources/<int:source_id>/toggle")
    @api_errors
    def api_toggle(source_id: int):
        body = _body()
        action = controller.toggle_boundary(
            source_id, _int_field(body, "segment"), _int_field(body, "position")
        )
        return jsonify({"ok": True, "action": action, "boundaries": controller.get(source_id).boundaries})

    @app.get("/api/boundaries")
    def api_boundaries_get():
        # raw JSON text, exactly what a bulk edit sends back
        resp = app.response_class(controller.export_boundaries(), mimetype="application/json")
        shared = controller.duplicate_names()
        if shared:
            # one key per name, so sources sharing a name all receive the last one's list on PUT
            resp.headers["X-Segdiff-Warning"] = "duplicate source names: " + ", ".join(shared)
        return resp

    @app.put("/api/boundaries")
    @api_errors
    def api_boundaries_put():
        changed = controller.replace_boundaries(request.get_data(as_text=True))
        return jsonify({"ok": True, "changed": changed})

    @app.post("/api/length-cap")
    @api_errors
    def api_length_cap():
        body = _body()
        cap = _int_field(body, "cap") if "cap" in body else None
        return jsonify({"ok": True, "max_length": controller.grow_length_cap(cap)})

    return app


def run_dashboard(controller: EditController, cfg: Config | None = None) -> None:
    cfg = cfg or load_config()
    app = build_app(controller, cfg)
    log.info("serving on http://%s:%d", cfg.host, cfg.port)
    if HAVE_WAITRESS:
        try:
            _serve(app, host=cfg.host, port=cfg.port)
        except KeyboardInterrupt:
            pass  # expected when shutting down
    else:
        try:
            app.run(host=cfg.host, port=cfg.port, debug=False)
        except KeyboardInterrupt:
            pass  # expected when shutting down

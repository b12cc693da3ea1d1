from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from flask import Flask, current_app, jsonify, redirect, render_template, request, send_from_directory
from werkzeug.exceptions import HTTPException

from .jsonlog import setup_logging
from .kv import FileKVStore, KVStore, MemoryKVStore, is_valid_key
from .notes import NoteManager, gen_id

log = logging.getLogger("notesapp")

FRONTEND_DIR = Path(__file__).resolve().parents[1] / "frontend"


# ---------- Config ----------
def load_config(env: Mapping[str, str] = os.environ) -> Dict[str, Any]:
    return {
        "DATA_DIR": Path(env.get("DATA_DIR", "/data")),
        "STORE_BACKEND": env.get("STORE_BACKEND", "file").strip().lower(),
        "LOG_LEVEL": env.get("LOG_LEVEL", "INFO"),
        "MAX_CONTENT_LENGTH": int(env.get("MAX_CONTENT_LENGTH", str(1024 * 1024))),
    }


def make_store(config: Mapping[str, Any]) -> KVStore:
    backend = config.get("STORE_BACKEND", "file")
    if backend == "memory":
        return MemoryKVStore()
    if backend == "file":
        return FileKVStore(Path(config["DATA_DIR"]) / "kv")
    raise ValueError(f"Unknown STORE_BACKEND: {backend!r}")


def get_store() -> KVStore:
    store = current_app.extensions.get("notes_store")
    if store is None:
        store = make_store(current_app.config)
        current_app.extensions["notes_store"] = store
    return store


def _wants_json() -> bool:
    accept = request.accept_mimetypes
    best = accept.best_match(["application/json", "text/html"])
    return best == "application/json" and accept[best] > accept["text/html"]


def _bad_request(error: str, **fields: Any):
    log.info("Rejected request", extra={"event": "invalid_request", "extra_data": {"path": request.path, "reason": error, **fields}})
    return jsonify({"error": error}), 400


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(
        __name__,
        static_folder=str(FRONTEND_DIR),
        static_url_path="/static",
        template_folder=str(FRONTEND_DIR / "templates"),
    )
    app.config.update(load_config())
    if config:
        app.config.update(config)
    setup_logging(app.config["LOG_LEVEL"])

    @app.route("/favicon.ico")
    def favicon():
        return send_from_directory(FRONTEND_DIR, "favicon.svg", mimetype="image/svg+xml")

    # ---------- Errors ----------
    @app.errorhandler(Exception)
    def _unhandled(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        log.exception("Unhandled exception on %s %s", request.method, request.path, extra={"event": "unhandled_error"})
        return jsonify({"error": "Internal Server Error"}), 500

    # ---------- Health ----------
    @app.route("/health")
    def health():
        return {"status": "ok"}

    # ---------- Pages ----------
    @app.route("/")
    def index():
        return redirect(f"/{gen_id()}")

    @app.route("/<list_id>", methods=["GET"])
    def list_page(list_id: str):
        if not is_valid_key(list_id):
            return _bad_request("Invalid list id")
        notes = NoteManager(get_store(), list_id).list()
        return render_template("notes.html", list_id=list_id, notes=notes, encrypted=False)

    @app.route("/secure/<list_id>", methods=["GET"])
    def secure_page(list_id: str):
        if not is_valid_key(list_id):
            return _bad_request("Invalid list id")
        notes = NoteManager(get_store(), list_id).list()
        return render_template("notes.html", list_id=list_id, notes=notes, encrypted=True)

    @app.route("/<list_id>", methods=["POST"])
    @app.route("/secure/<list_id>", methods=["POST"])
    def list_action(list_id: str):
        if not is_valid_key(list_id):
            return _bad_request("Invalid list id")
        manager = NoteManager(get_store(), list_id)
        intent = request.form.get("intent")
        result: Dict[str, Any] = {"success": True}

        if intent == "create":
            text = request.form.get("text")
            if not isinstance(text, str) or not text:
                return _bad_request("Invalid text", intent=intent)
            note_id = (request.form.get("id") or "").strip() or None
            result["note"] = manager.create(text, note_id=note_id)
        elif intent == "delete":
            note_id = (request.form.get("id") or "").strip()
            if not note_id:
                return _bad_request("Invalid id", intent=intent)
            manager.delete(note_id)
        else:
            return _bad_request("Invalid intent", intent=intent)

        if _wants_json():
            return jsonify(result)
        return redirect(request.path, code=303)

    # ---------- API ----------
    @app.route("/api/lists/<list_id>/notes", methods=["GET"])
    def api_list_notes(list_id: str):
        if not is_valid_key(list_id):
            return _bad_request("Invalid list id")
        return jsonify(NoteManager(get_store(), list_id).list())

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8060"))
    app.run(host="0.0.0.0", port=port)

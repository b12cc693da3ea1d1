from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from .kv import KVStore

log = logging.getLogger("notesapp.notes")

Note = Dict[str, Any]


def gen_id() -> str:
    return uuid.uuid4().hex


class CorruptListError(ValueError):
    pass


def _decode(list_id: str, raw: Optional[str]) -> List[Note]:
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if not isinstance(data, list) or not all(isinstance(n, dict) and "id" in n for n in data):
        log.warning("Stored list is not a JSON array of notes", extra={"event": "store_corrupt", "extra_data": {"list_id": list_id}})
        raise CorruptListError(f"Stored list {list_id!r} is corrupt")
    return [{"id": str(n["id"]), "text": str(n.get("text", ""))} for n in data]


def _encode(notes: List[Note]) -> Optional[str]:
    if not notes:
        return None
    return json.dumps(notes, ensure_ascii=False)


class NoteManager:
    """Notes of one list, kept as a JSON array under the list id."""

    def __init__(self, store: KVStore, list_id: str):
        self.store = store
        self.list_id = list_id

    def list(self) -> List[Note]:
        try:
            return _decode(self.list_id, self.store.get(self.list_id))
        except CorruptListError:
            return []

    def create(self, text: str, note_id: Optional[str] = None) -> Note:
        note = {"id": note_id or gen_id(), "text": text}

        def apply(raw: Optional[str]) -> Optional[str]:
            notes = _decode(self.list_id, raw)
            for i, n in enumerate(notes):
                if n["id"] == note["id"]:
                    notes[i] = note
                    break
            else:
                notes.append(note)
            return _encode(notes)

        self.store.update(self.list_id, apply)
        log.info("Note created", extra={"event": "note_created", "extra_data": {"list_id": self.list_id, "note_id": note["id"], "text_len": len(text)}})
        return note

    def delete(self, note_id: str) -> bool:
        removed = []

        def apply(raw: Optional[str]) -> Optional[str]:
            notes = _decode(self.list_id, raw)
            kept = [n for n in notes if n["id"] != note_id]
            removed.append(len(kept) != len(notes))
            return _encode(kept)

        self.store.update(self.list_id, apply)
        log.info("Note deleted", extra={"event": "note_deleted", "extra_data": {"list_id": self.list_id, "note_id": note_id, "found": removed[0]}})
        return removed[0]

    def clear(self) -> None:
        self.store.delete(self.list_id)

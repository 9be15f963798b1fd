from __future__ import annotations

import contextlib
import json
import os
from pathlib import Path

from loguru import logger

from termchat.errors import StorageError
from termchat.memory.models import Turn
from termchat.memory.session import SessionKey

_CHATLOG_FILE = "chatlog.json"


class TranscriptStore:
    """Persists each session's transcript as a flat JSON array of turns.

    Layout: ``<root>/<parent_process_id>/<started_at>/chatlog.json``.
    Appends are read-modify-write over the whole file, so a session key must
    only ever have one writer at a time.
    """

    def __init__(self, root: str | Path):
        self._root = Path(root).expanduser()

    def path_for(self, key: SessionKey) -> Path:
        return self._root / str(key.parent_process_id) / str(key.started_at) / _CHATLOG_FILE

    def load(self, key: SessionKey) -> list[Turn]:
        path = self._ensure_location(key)
        if not path.exists():
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as ex:
            raise StorageError(f"Cannot read transcript {path}: {ex}") from ex
        if not text.strip():
            return []
        return self._parse(path, text)

    def append(self, key: SessionKey, user_turn: Turn, assistant_turn: Turn) -> list[Turn]:
        transcript = self.load(key)
        transcript.extend((user_turn, assistant_turn))
        self._write(self.path_for(key), transcript)
        logger.debug(f"Transcript {key} now holds {len(transcript)} turns")
        return transcript

    def _ensure_location(self, key: SessionKey) -> Path:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as ex:
            raise StorageError(f"Cannot create session directory {path.parent}: {ex}") from ex
        return path

    def _parse(self, path: Path, text: str) -> list[Turn]:
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as ex:
            raise StorageError(f"Malformed transcript {path}: {ex}") from ex
        if not isinstance(data, list):
            raise StorageError(f"Malformed transcript {path}: expected a JSON array")
        turns: list[Turn] = []
        for index, item in enumerate(data):
            try:
                turns.append(Turn.from_dict(item))
            except ValueError as ex:
                raise StorageError(f"Malformed transcript {path} at entry {index}: {ex}") from ex
        return turns

    def _write(self, path: Path, transcript: list[Turn]) -> None:
        payload = json.dumps([t.to_dict() for t in transcript], ensure_ascii=False)
        # The previous transcript stays intact until os.replace succeeds.
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as ex:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Cannot write transcript {path}: {ex}") from ex

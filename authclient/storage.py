"""
authclient/storage.py -- Optional persistence for the cached user.

A SessionStorage keeps the last-known user (as a plain dict) across process
restarts so an application can render "logged in as ..." before the first
/me round-trip finishes. It never stores credentials or the session token;
the token stays in the HTTP client's cookie jar.

Backends:
  MemorySessionStorage   -- survives AuthClient re-creation within a process.
  JsonFileSessionStorage -- one JSON file on disk.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger("sessionkit.client")


class SessionStorage(Protocol):
    def load(self) -> Optional[dict[str, Any]]: ...

    def save(self, user: dict[str, Any]) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStorage:
    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data = dict(initial) if initial is not None else None

    def load(self) -> Optional[dict[str, Any]]:
        return dict(self._data) if self._data is not None else None

    def save(self, user: dict[str, Any]) -> None:
        self._data = dict(user)

    def clear(self) -> None:
        self._data = None


class JsonFileSessionStorage:
    """Store the cached user as JSON at path.

    Writes go to a sibling temp file followed by os.replace(), so a crash
    mid-write leaves either the old file or the new one, never a torn one.
    An unreadable or corrupt file loads as "no user".
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> Optional[dict[str, Any]]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self._path, exc_info=True)
            return None
        return data if isinstance(data, dict) else None

    def save(self, user: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(user), encoding="utf-8")
        os.replace(tmp, self._path)

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

TOKEN_KEY = "token"


class TokenStore(Protocol):
    def load(self) -> str | None: ...

    def save(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    def __init__(self, token: str | None = None):
        self._data: dict[str, str] = {}
        if token:
            self._data[TOKEN_KEY] = token

    def load(self) -> str | None:
        return self._data.get(TOKEN_KEY)

    def save(self, token: str) -> None:
        self._data[TOKEN_KEY] = token

    def clear(self) -> None:
        self._data.pop(TOKEN_KEY, None)


class FileTokenStore:
    """Token persisted as ``{"token": ...}`` in a JSON file.

    ``save`` returns only once the file is replaced on disk.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> str | None:
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError):
            return None
        token = data.get(TOKEN_KEY) if isinstance(data, dict) else None
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as handle:
            json.dump({TOKEN_KEY: token}, handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

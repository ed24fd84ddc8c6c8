"""Credential store interface consumed by the transport adapter.

Persisting credentials belongs to the login flow; this layer only reads the
bearer token and clears it when the backend answers 401.
"""

import json
from pathlib import Path
from typing import Optional, Protocol

from adminsync.utils.logging import get_logger

logger = get_logger(__name__)


class CredentialStore(Protocol):
    def get_token(self) -> Optional[str]:
        ...

    def clear(self) -> None:
        ...


class MemoryCredentialStore:
    """In-process credential holder."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def get_token(self) -> Optional[str]:
        return self._token

    def clear(self) -> None:
        self._token = None


class FileCredentialStore:
    """
    Reads the persisted auth record from a JSON file.

    The file maps store keys to records shaped like
    {"state": {"token": "...", ...}}, the layout the dashboard login writes.
    """

    def __init__(self, path: Path, key: str):
        self.path = Path(path).expanduser()
        self.key = key

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Unreadable credential file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get_token(self) -> Optional[str]:
        record = self._read().get(self.key)
        if isinstance(record, str):
            try:
                record = json.loads(record)
            except json.JSONDecodeError:
                return None
        if not isinstance(record, dict):
            return None
        state = record.get("state") or {}
        token = state.get("token") if isinstance(state, dict) else None
        return token or None

    def clear(self) -> None:
        data = self._read()
        if self.key not in data:
            return
        del data[self.key]
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Cleared stored credentials '{self.key}'")

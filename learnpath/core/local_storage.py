"""Durable local key-value storage for viewer progress."""

from pathlib import Path
from typing import Protocol
from urllib.parse import quote, unquote

from learnpath.core.logging import get_logger

logger = get_logger(__name__)


class LocalStorage(Protocol):
    """String key-value store scoped to this device."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class JsonFileStorage:
    """One UTF-8 file per key inside a directory.

    Writes go through a temporary sibling file and an atomic rename so a
    crash never leaves a half-written value behind.
    """

    suffix = ".json"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='-_.')}{self.suffix}"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)
        logger.debug("Local storage item written", key=key, size=len(value))

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            unquote(path.name[: -len(self.suffix)])
            for path in self.directory.glob(f"*{self.suffix}")
        )

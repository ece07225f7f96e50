"""
Durable key/value storage for notification state.

Plays the role a browser's localStorage plays for the web client: string
values under string keys, no schema. The store and marker collection own the
JSON encoding; backends only move text around.

Backends:
- MemoryStorage: process-local dict (tests, demo mode)
- JsonFileStorage: one file per key under a directory
- MongoStorage: one document per key in a MongoDB collection
"""

import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from pymongo.collection import Collection


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage(KeyValueStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileStorage(KeyValueStorage):
    """Stores each key as <directory>/<key>.json, written atomically."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MongoStorage(KeyValueStorage):
    """Stores each key as {_id: key, value: text} in a MongoDB collection."""

    def __init__(self, collection: Collection) -> None:
        self.collection = collection

    def get_item(self, key: str) -> Optional[str]:
        doc = self.collection.find_one({"_id": key})
        return doc.get("value") if doc else None

    def set_item(self, key: str, value: str) -> None:
        self.collection.update_one(
            {"_id": key},
            {"$set": {"value": value, "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )

    def remove_item(self, key: str) -> None:
        self.collection.delete_one({"_id": key})

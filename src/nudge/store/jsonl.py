"""JSON file operations shared by file-backed stores.

Provides a generic TypedJSONL[T] for append-only logs of entries that
implement to_dict/from_dict, plus ``write_json_atomic`` for single-record
files.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Protocol, Self

import aiofiles

logger = logging.getLogger(__name__)


class Serializable(Protocol):
    """Protocol for types that can be serialized to/from JSON dicts."""

    def to_dict(self) -> dict[str, Any]: ...

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Self: ...


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


async def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write a JSON document by writing a temp file and renaming it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.stem}_",
        suffix=".tmp",
    )
    try:
        async with aiofiles.open(temp_fd, "w", encoding="utf-8") as f:
            await f.write(_dumps(data))
        Path(temp_path).replace(path)
    except Exception:
        try:
            Path(temp_path).unlink()
        except OSError:
            pass
        raise


async def read_json(path: Path) -> dict[str, Any]:
    async with aiofiles.open(path, encoding="utf-8") as f:
        return json.loads(await f.read())


class TypedJSONL[T: Serializable]:
    """Append-only JSONL file of typed entries.

    Provides:
    - append: Add a single entry (append mode)
    - load_all: Read all entries from file
    - rewrite: Atomically rewrite file with new entries
    """

    def __init__(self, path: Path, entry_type: type[T]) -> None:
        self.path = path
        self._entry_type = entry_type
        self.last_error_count: int = 0
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def append(self, entry: T) -> None:
        async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
            await f.write(_dumps(entry.to_dict()) + "\n")

    async def load_all(self) -> list[T]:
        """Load all entries. Malformed lines are skipped and counted."""
        if not self.path.exists():
            self.last_error_count = 0
            return []

        entries: list[T] = []
        error_count = 0
        async with aiofiles.open(self.path, encoding="utf-8") as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(self._entry_type.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    error_count += 1
                    logger.warning(
                        "malformed_jsonl_line", extra={"error.message": str(e)}
                    )

        self.last_error_count = error_count
        if error_count > 0:
            logger.warning(
                "jsonl_file_corrupted",
                extra={"file.name": self.path.name, "error_count": error_count},
            )
        return entries

    async def rewrite(self, entries: list[T]) -> None:
        """Atomically replace the file contents with ``entries``."""
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.stem}_",
            suffix=".tmp",
        )
        try:
            async with aiofiles.open(temp_fd, "w", encoding="utf-8") as f:
                for entry in entries:
                    await f.write(_dumps(entry.to_dict()) + "\n")
            Path(temp_path).replace(self.path)
        except Exception:
            try:
                Path(temp_path).unlink()
            except OSError:
                pass
            raise

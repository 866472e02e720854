"""
Document Store

Named JSON documents persisted one file per name under a data directory.

Every operation on a key runs under that key's lock, so writes to the same
document never interleave and read-modify-write cycles never lose updates.
Different keys proceed concurrently. Locks are created on demand and
dropped as soon as nobody is queued on them.

Files are written to a temp file and renamed into place, so a reader never
observes a partially written document. Blocking file I/O runs in the
default executor to keep the event loop responsive.
"""

import asyncio
import copy
import json
import os
import re
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable

from paws_server.common.exceptions import (
    DocumentNotFoundError,
    InvalidPathError,
    MalformedJSONError,
    PawsError,
    ValidationError,
    WriteFailureError,
)
from paws_server.common.logging_setup import get_service_logger

logger = get_service_logger("store")

# Returned by an update() mutator to skip the write
UNCHANGED = object()

_NO_DEFAULT = object()
_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_SUFFIX = ".json"


def strip_absent(value: Any) -> Any:
    """
    Drop object fields whose value is absent (None), recursively.

    List elements are kept as they are; only dict fields are removed.
    """
    if isinstance(value, dict):
        return {k: strip_absent(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_absent(v) for v in value]
    return value


class _KeyLock:
    """Lock for one key plus the number of operations holding or awaiting it"""

    __slots__ = ("lock", "waiters")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.waiters = 0


class DocumentStore:
    """
    JSON document persistence with per-key write serialization.

    Features:
    - Path-safe document names (no traversal, no absolute paths)
    - FIFO per-key serialization, concurrency across keys
    - Atomic replace on write
    - Atomic read-modify-write via update()
    """

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)
        self._locks: dict[str, _KeyLock] = {}

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    @staticmethod
    def resolve(name: object) -> str:
        """
        Normalize a document name to its canonical key.

        Args:
            name: Caller-supplied document name (e.g. "water-events",
                "water-events.json", "logs/motion")

        Returns:
            Canonical key ("/"-separated, no ".json" suffix)

        Raises:
            InvalidPathError: empty, absolute or traversing names
        """
        if not isinstance(name, str):
            raise InvalidPathError(name, "name must be a string")

        raw = name.strip()
        if not raw:
            raise InvalidPathError(name, "name is empty")
        if "\x00" in raw:
            raise InvalidPathError(name, "name contains a NUL byte")
        if raw.startswith(("/", "\\")) or _DRIVE_RE.match(raw):
            raise InvalidPathError(name, "absolute paths are not allowed")

        segments = raw.replace("\\", "/").split("/")
        if any(segment == ".." for segment in segments):
            raise InvalidPathError(name, "path traversal is not allowed")

        segments = [s for s in segments if s not in ("", ".")]
        if segments and segments[-1].endswith(_SUFFIX):
            segments[-1] = segments[-1][: -len(_SUFFIX)]
        if not segments or not segments[-1]:
            raise InvalidPathError(name, "name is empty")

        return "/".join(segments)

    def path_for(self, key: str) -> Path:
        """File path for a canonical key"""
        *parents, leaf = key.split("/")
        return self.data_dir.joinpath(*parents, leaf + _SUFFIX)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _key_lock(self, key: str):
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    async def _serialized(self, key: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run an operation under the key lock.

        The operation runs in its own task and is shielded from caller
        cancellation: once queued, it completes and releases the lock in
        order even if the requester goes away.
        """
        async def locked() -> Any:
            async with self._key_lock(key):
                return await operation()

        return await asyncio.shield(asyncio.ensure_future(locked()))

    def active_locks(self) -> int:
        """Number of keys with queued or running operations"""
        return len(self._locks)

    async def _run_io(self, func, *args):
        """Run a blocking file operation in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # ------------------------------------------------------------------
    # Blocking file primitives
    # ------------------------------------------------------------------

    def _read_file(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise DocumentNotFoundError(key) from None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedJSONError(key, str(e)) from e
        except OSError as e:
            raise PawsError(f"Failed to read document {key}: {e}") from e

    def _write_file(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Value for {key} is not JSON-serializable: {e}") from e

        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except OSError as e:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove temp file {temp_path}")
            raise WriteFailureError(key, str(e)) from e

    def _remove_file(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise DocumentNotFoundError(key) from None
        except OSError as e:
            raise WriteFailureError(key, str(e)) from e

    def _list_files(self) -> list[str]:
        if not self.data_dir.exists():
            return []
        keys = []
        for path in self.data_dir.rglob(f"*{_SUFFIX}"):
            if not path.is_file():
                continue
            relative = path.relative_to(self.data_dir).with_suffix("")
            keys.append(relative.as_posix())
        return sorted(keys)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def read(self, name: str) -> Any:
        """
        Read a document.

        Raises:
            DocumentNotFoundError: no document with this name
            MalformedJSONError: stored content is not valid JSON
        """
        key = self.resolve(name)

        async def operation():
            return await self._run_io(self._read_file, key)

        return await self._serialized(key, operation)

    async def read_or(self, name: str, default: Any = None) -> Any:
        """Read a document, returning a copy of ``default`` when it doesn't exist"""
        try:
            return await self.read(name)
        except DocumentNotFoundError:
            return copy.deepcopy(default)

    async def write(self, name: str, value: Any) -> Any:
        """
        Replace a document.

        Args:
            name: Document name
            value: Any JSON-serializable value; None object fields are dropped

        Returns:
            The value as stored
        """
        key = self.resolve(name)
        stored = strip_absent(value)

        async def operation():
            await self._run_io(self._write_file, key, stored)
            logger.debug(f"Wrote document {key}")
            return stored

        return await self._serialized(key, operation)

    async def merge(self, name: str, partial: dict) -> Any:
        """
        Shallow-merge fields into a document.

        A missing document is treated as an empty object. If the current
        value is not an object (e.g. a log array), ``partial`` replaces it.

        Returns:
            The merged value as stored
        """
        if not isinstance(partial, dict):
            raise ValidationError(
                f"Merge payload must be an object, got {type(partial).__name__}"
            )

        def apply(current: Any) -> Any:
            if isinstance(current, dict):
                return {**current, **partial}
            return dict(partial)

        return await self.update(name, apply, default={})

    async def update(
        self,
        name: str,
        mutator: Callable[[Any], Any],
        default: Any = _NO_DEFAULT,
    ) -> Any:
        """
        Atomic read-modify-write of one document.

        Args:
            name: Document name
            mutator: Receives the current value and returns the new one, or
                UNCHANGED to skip the write. Runs while the key is locked.
            default: Value used when the document doesn't exist; without it
                a missing document raises DocumentNotFoundError

        Returns:
            The value as stored (or the current value when UNCHANGED)
        """
        key = self.resolve(name)

        async def operation():
            try:
                current = await self._run_io(self._read_file, key)
            except DocumentNotFoundError:
                if default is _NO_DEFAULT:
                    raise
                current = copy.deepcopy(default)

            updated = mutator(current)
            if updated is UNCHANGED:
                return current

            stored = strip_absent(updated)
            await self._run_io(self._write_file, key, stored)
            logger.debug(f"Updated document {key}")
            return stored

        return await self._serialized(key, operation)

    async def remove(self, name: str) -> None:
        """
        Delete a document.

        Raises:
            DocumentNotFoundError: no document with this name
        """
        key = self.resolve(name)

        async def operation():
            await self._run_io(self._remove_file, key)
            logger.info(f"Removed document {key}")

        await self._serialized(key, operation)

    async def list_names(self) -> list[str]:
        """Canonical names of all stored documents, sorted"""
        return await self._run_io(self._list_files)

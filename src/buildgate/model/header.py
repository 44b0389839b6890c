"""Package headers and the cache that owns them."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)


class HeaderError(Exception):
    """Raised when a package header cannot be read or is malformed."""


@dataclass(frozen=True)
class Header:
    """Package-level metadata, parsed once per package."""

    name: str
    version: str
    release: str
    arch: str
    epoch: int | None = None
    license: str = ""
    vendor: str = ""
    buildhost: str = ""
    summary: str = ""
    description: str = ""
    source_package: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, defaults: Mapping[str, Any]) -> Header:
        """Build a Header from parsed metadata.

        *defaults* supplies identity fields (name, version, ...) that the
        mapping may omit.  Unknown keys are kept in ``extra``.
        """
        if not isinstance(data, dict):
            msg = "header must be a mapping"
            raise HeaderError(msg)

        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        merged: dict[str, Any] = {k: v for k, v in defaults.items() if k in known}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                merged[key] = value
            else:
                extra[str(key)] = value

        for required in ("name", "version", "release", "arch"):
            if not merged.get(required):
                msg = f"header is missing required field '{required}'"
                raise HeaderError(msg)

        epoch_raw = merged.get("epoch")
        try:
            epoch = int(epoch_raw) if epoch_raw is not None else None
        except (TypeError, ValueError):
            msg = f"header has invalid epoch {epoch_raw!r}"
            raise HeaderError(msg) from None

        return cls(
            name=str(merged["name"]),
            version=str(merged["version"]),
            release=str(merged["release"]),
            arch=str(merged["arch"]),
            epoch=epoch,
            license=str(merged.get("license") or ""),
            vendor=str(merged.get("vendor") or ""),
            buildhost=str(merged.get("buildhost") or ""),
            summary=str(merged.get("summary") or ""),
            description=str(merged.get("description") or ""),
            source_package=str(merged.get("source_package") or ""),
            extra=extra,
        )


class HeaderCache:
    """Single owner of parsed headers, keyed by package header key.

    Hits are plain dict reads.  A miss takes a per-key lock so concurrent
    inspections never parse the same header twice.
    """

    def __init__(self, loader: Callable[[str], Header]) -> None:
        self._loader = loader
        self._store: dict[str, Header] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._parses = 0

    def _lock_for(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def get(self, key: str) -> Header:
        """Return the cached header for *key*, parsing it on first use.

        Raises :class:`HeaderError` if the loader fails; failures are not
        cached, so a later call retries.
        """
        header = self._store.get(key)
        if header is not None:
            return header

        with self._lock_for(key):
            header = self._store.get(key)
            if header is None:
                logger.debug("Parsing header for %s", key)
                header = self._loader(key)
                with self._lock:
                    self._store[key] = header
                    self._parses += 1
        return header

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        """Release every cached header (teardown)."""
        with self._lock:
            self._store.clear()
            self._key_locks.clear()

    def stats(self) -> dict[str, int]:
        """Return cache statistics."""
        return {"entries": len(self._store), "parses": self._parses}

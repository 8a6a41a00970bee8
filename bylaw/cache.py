"""Read-through cache sitting beneath the forge client.

Entries are keyed by `(namespace, owner, repo, identifier, parameters)` and
expire after the TTL configured for their namespace. Write operations on the
forge invalidate whole `(namespace, owner[, repo])` prefixes so that the
re-check after a fix observes fresh state.

All bookkeeping happens on the event loop thread; only loaders may hop to
worker threads. Concurrent misses on the same key may each invoke the loader.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import time
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import CacheConfig

_logger = logging.getLogger(__name__)

FALLBACK_ENTRY_SIZE_BYTES = 1024


class CacheNamespace(enum.StrEnum):
    """Kinds of forge resources held in the cache."""

    REPOSITORY_LIST = "repository_list"
    REPOSITORY = "repository"
    BRANCH = "branch"
    BRANCH_PROTECTION = "branch_protection"
    COLLABORATORS = "collaborators"
    TEAM_PERMISSIONS = "team_permissions"
    SECURITY_SETTINGS = "security_settings"
    VULNERABILITY_ALERTS = "vulnerability_alerts"
    CONTENTS = "contents"


@dataclasses.dataclass(frozen=True)
class CacheKeyDescriptor:
    """Identity of a cached forge read."""

    namespace: CacheNamespace
    owner: str
    identifier: str
    repo: str | None = None
    parameters: cabc.Mapping[str, typ.Any] | None = None

    def normalized(self) -> CacheKeyDescriptor:
        """Return the descriptor with case-insensitive parts lowered."""
        return dataclasses.replace(
            self,
            owner=self.owner.lower(),
            repo=self.repo.lower() if self.repo else None,
        )

    def key(self) -> str:
        """Return the storage key for this descriptor."""
        normalized = self.normalized()
        parts = (
            str(normalized.namespace),
            normalized.owner,
            normalized.repo or "*",
            normalized.identifier,
        )
        key = ":".join(parts)
        if normalized.parameters is not None:
            serialized = json.dumps(
                normalized.parameters,
                sort_keys=True,
                separators=(",", ":"),
                default=str,
            )
            key = f"{key}#{serialized}"
        return key


@dataclasses.dataclass
class CacheRecord:
    """Stored value plus its bookkeeping."""

    descriptor: CacheKeyDescriptor
    value: typ.Any
    created_at: float
    expires_at: float
    last_accessed: float
    hits: int = 0

    def expired(self, now: float) -> bool:
        """Return True once the record has outlived its TTL."""
        return self.expires_at <= now


@dataclasses.dataclass(frozen=True)
class CacheStats:
    """Hit/miss counters for a cache manager."""

    hits: int
    misses: int
    size: int


def _estimate_size(record: CacheRecord) -> int:
    try:
        size = len(json.dumps(record.value, default=repr).encode())
    except (TypeError, ValueError):
        return FALLBACK_ENTRY_SIZE_BYTES
    return size if size > 0 else FALLBACK_ENTRY_SIZE_BYTES


class MemoryCacheStorage:
    """In-memory storage with an optional approximate byte budget."""

    def __init__(self, max_size_mb: float | None = None) -> None:
        """Configure the byte budget; None disables eviction."""
        self._records: dict[str, CacheRecord] = {}
        self._sizes: dict[str, int] = {}
        self._max_bytes = (
            int(max_size_mb * 1024 * 1024) if max_size_mb and max_size_mb > 0 else None
        )
        self._current_bytes = 0

    def get(self, key: str) -> CacheRecord | None:
        """Return the record stored under `key`."""
        return self._records.get(key)

    def set(self, key: str, record: CacheRecord) -> None:
        """Store a record and evict older entries when over budget."""
        size = _estimate_size(record)
        self._current_bytes += size - self._sizes.get(key, 0)
        self._records[key] = record
        self._sizes[key] = size
        if self._max_bytes is not None and self._current_bytes > self._max_bytes:
            self._evict(keep=key)

    def delete(self, key: str) -> None:
        """Remove `key` if present."""
        if self._records.pop(key, None) is not None:
            self._current_bytes -= self._sizes.pop(key, 0)

    def clear(self) -> None:
        """Drop every record."""
        self._records.clear()
        self._sizes.clear()
        self._current_bytes = 0

    def items(self) -> list[tuple[str, CacheRecord]]:
        """Return a snapshot of the stored records."""
        return list(self._records.items())

    def __len__(self) -> int:
        """Return the number of stored records."""
        return len(self._records)

    def _evict(self, *, keep: str) -> None:
        max_bytes = typ.cast("int", self._max_bytes)
        by_age = sorted(
            (item for item in self._records.items() if item[0] != keep),
            key=lambda item: item[1].last_accessed,
        )
        for key, _record in by_age:
            if self._current_bytes <= max_bytes:
                break
            self.delete(key)
        if self._current_bytes > max_bytes:
            # The newest record alone exceeds the budget.
            self.delete(keep)


class CacheManager:
    """Namespace- and TTL-aware read-through cache."""

    def __init__(
        self,
        config: CacheConfig,
        *,
        clock: typ.Callable[[], float] = time.monotonic,
        storage: MemoryCacheStorage | None = None,
    ) -> None:
        """Bind the cache configuration, clock and backing storage."""
        self._config = config
        self._clock = clock
        self._storage = (
            storage if storage is not None else MemoryCacheStorage(config.max_size_mb)
        )
        self._hits = 0
        self._misses = 0

    @property
    def enabled(self) -> bool:
        """Return True when caching is switched on."""
        return self._config.enabled

    async def get_or_load[T](
        self,
        descriptor: CacheKeyDescriptor,
        loader: typ.Callable[[], cabc.Awaitable[T]],
        *,
        ttl: int | None = None,
        force_refresh: bool = False,
    ) -> T:
        """Return the cached value for `descriptor`, loading it on a miss."""
        if not self.enabled:
            return await loader()

        key = descriptor.key()
        if force_refresh:
            self._storage.delete(key)

        now = self._clock()
        existing = self._storage.get(key)
        if existing is not None and not existing.expired(now):
            existing.hits += 1
            existing.last_accessed = now
            self._hits += 1
            return typ.cast("T", existing.value)
        if existing is not None:
            self._storage.delete(key)

        self._misses += 1
        value = await loader()
        seconds = self._resolve_ttl(descriptor.namespace, ttl)
        if seconds is None:
            return value

        stored_at = self._clock()
        self._storage.set(
            key,
            CacheRecord(
                descriptor=descriptor.normalized(),
                value=value,
                created_at=stored_at,
                expires_at=stored_at + seconds,
                last_accessed=stored_at,
            ),
        )
        return value

    def invalidate_namespace(
        self,
        namespace: CacheNamespace,
        owner: str,
        repo: str | None = None,
    ) -> None:
        """Drop every entry under the `(namespace, owner[, repo])` prefix."""
        if not self.enabled:
            return
        owner_key = owner.lower()
        repo_key = repo.lower() if repo else None
        removed = 0
        for key, record in self._storage.items():
            stored = record.descriptor
            if stored.namespace != namespace or stored.owner != owner_key:
                continue
            if repo_key is not None and stored.repo != repo_key:
                continue
            self._storage.delete(key)
            removed += 1
        if removed:
            _logger.debug(
                "Invalidated %d %s entries for %s/%s",
                removed,
                namespace,
                owner,
                repo or "*",
            )

    def clear(self) -> None:
        """Drop every cached entry."""
        self._storage.clear()

    def stats(self) -> CacheStats:
        """Return hit/miss counters and the number of stored entries."""
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._storage))

    def _resolve_ttl(self, namespace: CacheNamespace, override: int | None) -> int | None:
        if override is not None:
            return max(1, override)
        configured = self._config.ttl
        for candidate in (configured.get(str(namespace)), configured.get("default")):
            if isinstance(candidate, int) and candidate > 0:
                return candidate
        return None

"""In-memory key/value cache with per-entry expiry.

Entries expire lazily on read and are also removed by a periodic sweep on
a daemon thread, so entries that are never read again do not accumulate.
A single :class:`threading.Lock` guards the map; lazy expiry, the sweep
and writers all take it.

Keys are plain strings built by the helpers at the bottom of this module.
Each component is percent-escaped so it never contains ``"-"``, and every
key for a user starts with ``"{escaped user_id}-"``.  That lets
:meth:`TtlCache.clear_user` evict one user without touching others, even
when user ids share a hyphenated prefix.

Example
-------
>>> cache = TtlCache(default_ttl=60.0, auto_sweep=False)
>>> cache.set(permission_key("u1", "s1", "users", "read"), True)
>>> cache.get("u1-s1-users-read")
True
>>> cache.clear_user("u1")
>>> cache.size()
0
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

GLOBAL_SITE: str = "*"


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and the clock reading after which it is stale."""

    value: object
    expires_at: float


class TtlCache:
    """Thread-safe TTL cache with user-scoped eviction.

    Parameters
    ----------
    default_ttl:
        Lifetime in seconds applied when :meth:`set` is called without a
        ``ttl`` (default: one hour).
    sweep_interval:
        Seconds between background sweeps of expired entries (default:
        five minutes).
    auto_sweep:
        Start the sweeper thread on construction (default ``True``).
    clock:
        Monotonic time source in seconds.  Override for testing.
    """

    def __init__(
        self,
        default_ttl: float = 3600.0,
        sweep_interval: float = 300.0,
        auto_sweep: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl < 0:
            raise ValueError(f"default_ttl must be non-negative; got {default_ttl!r}.")
        if sweep_interval <= 0:
            raise ValueError(f"sweep_interval must be positive; got {sweep_interval!r}.")
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None
        if auto_sweep:
            self.start_sweeper()

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def get(self, key: str) -> object | None:
        """Return the value stored under *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    def has(self, key: str) -> bool:
        """Return True when *key* holds an unexpired value."""
        with self._lock:
            return self._live_entry(key) is not None

    def set(self, key: str, value: object, ttl: float | None = None) -> None:
        """Store *value* under *key*, replacing any existing entry.

        Parameters
        ----------
        ttl:
            Lifetime in seconds; defaults to the cache's ``default_ttl``.
        """
        effective_ttl = self._default_ttl if ttl is None else ttl
        if effective_ttl < 0:
            raise ValueError(f"ttl must be non-negative; got {effective_ttl!r}.")
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + effective_ttl)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def clear_user(self, user_id: str) -> None:
        """Drop entries whose key is the escaped *user_id* or starts with it plus ``"-"``."""
        owner = escape_key_part(user_id)
        prefix = f"{owner}-"
        with self._lock:
            doomed = [k for k in self._entries if k == owner or k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        logger.debug("Evicted %d cache entries for user %s", len(doomed), user_id)

    def sweep_expired(self) -> int:
        """Physically remove every expired entry and return how many were dropped."""
        with self._lock:
            now = self._clock()
            doomed = [k for k, entry in self._entries.items() if now > entry.expires_at]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Cache sweep removed %d expired entries", len(doomed))
        return len(doomed)

    def size(self) -> int:
        """Return the number of stored entries, including not-yet-swept expired ones."""
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the daemon sweep thread.  No-op when it is already running."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            daemon=True,
            name="site-permissions-cache-sweeper",
        )
        self._sweeper.start()

    def close(self) -> None:
        """Stop the sweep thread and drop every entry."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=self._sweep_interval)
            self._sweeper = None
        self.clear()

    @property
    def sweeper_running(self) -> bool:
        """True while the background sweep thread is alive."""
        return self._sweeper is not None and self._sweeper.is_alive()

    @property
    def default_ttl(self) -> float:
        """The lifetime in seconds applied when :meth:`set` gets no ``ttl``."""
        return self._default_ttl

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _live_entry(self, key: str) -> CacheEntry | None:
        """Return the entry for *key*, deleting it first if it has expired.

        Caller must hold ``self._lock``.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _sweep_loop(self) -> None:
        """Sweep until :meth:`close` is called."""
        while not self._stop_event.wait(self._sweep_interval):
            self.sweep_expired()


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------

# "%" first so already-escaped text is not escaped twice.
_KEY_ESCAPES: tuple[tuple[str, str], ...] = (("%", "%25"), ("-", "%2D"), ("*", "%2A"))


def escape_key_part(part: object) -> str:
    """Percent-encode the key separator (and ``%``/``*``) inside one key component.

    Escaped components never contain ``"-"``, so distinct component tuples
    always give distinct keys, and an escaped component never equals the
    unescaped global-site marker ``"*"``.
    """
    text = str(part)
    for raw, escaped in _KEY_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _compose(owner: str, scope: str, resource: str, action: str, sub_resource: str | None) -> str:
    parts = [owner, scope, escape_key_part(resource), escape_key_part(action)]
    if sub_resource:
        parts.append(escape_key_part(sub_resource))
    return "-".join(parts)


def permission_key(
    user_id: str,
    site_id: str,
    resource: str,
    action: str,
    sub_resource: str | None = None,
) -> str:
    """Build the key for one site-scoped check."""
    return _compose(
        escape_key_part(user_id), escape_key_part(site_id), resource, action, sub_resource
    )


def global_permission_key(
    user_id: str,
    resource: str,
    action: str,
    sub_resource: str | None = None,
) -> str:
    """Build the key for a global (super-admin) check; the site slot holds a bare ``"*"``."""
    return _compose(escape_key_part(user_id), GLOBAL_SITE, resource, action, sub_resource)


def bulk_permission_key(user_id: str, site_id: str, check_hash: str) -> str:
    """Build the key for a whole bulk-check batch."""
    return f"{escape_key_part(user_id)}-{escape_key_part(site_id)}-bulk-{check_hash}"

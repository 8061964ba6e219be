"""Redis-backed vote counters with atomic multi-key scripts.

Counts live in a single hash whose fields are food IDs. Both mutating
operations are Lua scripts, so a whole batch runs as one atomic step on the
server and concurrent requests touching the same foods serialize there. The
service process holds no locks of its own around counter updates.
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, Iterable, List, Tuple, Union

import redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from .errors import FetchError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_HASH_KEY = "food_votes"

CounterKey = Union[int, str]

# HSETNX never overwrites, so a key incremented by a concurrent request between
# two initializers keeps its value.
INITIALIZE_SCRIPT = """
local counts = {}
for i, field in ipairs(ARGV) do
    redis.call('HSETNX', KEYS[1], field, 0)
    counts[i] = redis.call('HGET', KEYS[1], field)
end
return counts
"""

# ARGV is a flat list of field, direction pairs. A delta that would take a
# counter below zero is skipped; the rest of the batch still applies.
APPLY_DELTAS_SCRIPT = """
local applied = 0
for i = 1, #ARGV, 2 do
    local field = ARGV[i]
    local direction = tonumber(ARGV[i + 1])
    local current = tonumber(redis.call('HGET', KEYS[1], field) or '0')
    if current + direction >= 0 then
        redis.call('HINCRBY', KEYS[1], field, direction)
        applied = applied + 1
    end
end
return applied
"""


def _field(key: Hashable) -> str:
    return str(key)


def _to_int(raw: Union[bytes, str, int, None]) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bytes):
        raw = raw.decode("ascii")
    return int(raw)


class CounterStore:
    """Atomic bulk operations over the ``food -> vote count`` hash."""

    def __init__(self, client: redis.Redis, hash_key: str = DEFAULT_HASH_KEY):
        self.client = client
        self.hash_key = hash_key
        self._initialize = client.register_script(INITIALIZE_SCRIPT)
        self._apply = client.register_script(APPLY_DELTAS_SCRIPT)

    def initialize(self, keys: Iterable[CounterKey]) -> Dict[CounterKey, int]:
        """Set every absent key to 0 and return the count of every key."""
        ordered = list(dict.fromkeys(keys))
        if not ordered:
            return {}
        try:
            raw_counts = self._initialize(keys=[self.hash_key], args=[_field(key) for key in ordered])
        except redis.RedisError as exc:
            raise StoreError(f"Failed to initialize {len(ordered)} counters: {exc}") from exc
        return {key: _to_int(raw) for key, raw in zip(ordered, raw_counts)}

    def apply_deltas(self, deltas: Iterable[Tuple[CounterKey, int]]) -> int:
        """Apply ``(key, +1 | -1)`` deltas atomically and return how many were applied.

        Deltas that would make a counter negative are skipped, never fail the batch.
        """
        args: List[str] = []
        for key, direction in deltas:
            if direction not in (1, -1):
                raise ValueError(f"delta direction must be +1 or -1, got {direction!r}")
            args.extend((_field(key), str(direction)))
        if not args:
            return 0
        try:
            applied = self._apply(keys=[self.hash_key], args=args)
        except redis.RedisError as exc:
            raise StoreError(f"Failed to apply {len(args) // 2} vote deltas: {exc}") from exc
        applied = _to_int(applied)
        if applied < len(args) // 2:
            logger.info("Clamped %s of %s vote deltas at zero", len(args) // 2 - applied, len(args) // 2)
        return applied

    def get_counts(self, keys: Iterable[CounterKey]) -> Dict[CounterKey, int]:
        ordered = list(dict.fromkeys(keys))
        if not ordered:
            return {}
        try:
            raw_counts = self.client.hmget(self.hash_key, [_field(key) for key in ordered])
        except redis.RedisError as exc:
            raise StoreError(f"Failed to read {len(ordered)} counters: {exc}") from exc
        return {key: _to_int(raw) for key, raw in zip(ordered, raw_counts)}

    def all_counts(self) -> Dict[str, int]:
        try:
            raw = self.client.hgetall(self.hash_key)
        except redis.RedisError as exc:
            raise StoreError(f"Failed to read counters: {exc}") from exc
        counts: Dict[str, int] = {}
        for field, value in raw.items():
            name = field.decode("utf-8") if isinstance(field, bytes) else str(field)
            counts[name] = _to_int(value)
        return counts


def connect(
    url: str,
    *,
    timeout: float = 0.1,
    hash_key: str = DEFAULT_HASH_KEY,
) -> CounterStore:
    """Open a client with bounded timeouts and a single reconnect attempt.

    Raises :class:`FetchError` if the server does not answer a ping, which is
    fatal at service startup.
    """
    client = redis.Redis.from_url(
        url,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
        retry=Retry(ExponentialBackoff(cap=timeout * 10, base=timeout), 1),
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
    )
    try:
        client.ping()
    except redis.RedisError as exc:
        raise FetchError(f"Could not reach counter store at {url}: {exc}") from exc
    logger.info("Connected to counter store at %s", url)
    return CounterStore(client, hash_key=hash_key)

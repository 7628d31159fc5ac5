"""Time-limited cache of aggregated simulation results.

Results are keyed by :func:`inputs_hash`, a rounded fingerprint of the
simulation inputs, so small drifts (a few dollars of portfolio movement) reuse
the previous run.  Entries expire after ``config.cache_ttl_seconds`` (24 h).

Stores only need ``get``, ``upsert``, ``delete_expired`` and ``clear``.  Two
are provided: :class:`InMemoryCacheStore` for a single process and
:class:`SQLiteCacheStore` for a file shared between runs.  Store failures are
never fatal: :class:`ResultCache` logs them and the caller recomputes.

Solver results are not cached.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from .calculators.monte_carlo import run_simulations
from .calculators.returns import BoxMullerSampler, SamplerFactory, Seed
from .calculators.withdrawal import round_half_up
from .config import DEFAULT_CONFIG, SimulationConfig
from .errors import CacheUnavailableError
from .models import AggregatedResult, CacheEntry, SimulationInput
from .validation import validate_input

logger = logging.getLogger(__name__)


def _r(value: Optional[float], step: float) -> int:
    return round_half_up((value or 0.0) / step)


def inputs_hash(sim: SimulationInput) -> str:
    """Order-stable fingerprint of the inputs that affect a result.

    Currency amounts are rounded half up to $1,000 (portfolio) or $100
    (everything spending-like), rates to three decimals, flags to 0/1.
    """
    g = sim.guardrails if sim.guardrails_active else None
    ss = sim.social_security
    work = sim.part_time_work
    parts = [
        _r(sim.starting_portfolio, 1000),
        _r(sim.annual_spending, 100),
        int(sim.years),
        _r(sim.real_return, 0.001),
        _r(sim.volatility, 0.001),
        _r(ss.annual_amount if ss else 0, 100),
        ss.start_year if ss else 0,
        1 if g else 0,
        _r(g.upper_threshold if g else 0, 0.001),
        _r(g.lower_threshold if g else 0, 0.001),
        _r(g.increase_percent if g else 0, 0.001),
        _r(g.decrease_percent if g else 0, 0.001),
        _r(sim.essential_floor, 100),
        _r(sim.spending_ceiling, 100),
        _r(work.income if work else 0, 100),
        work.years if work else 0,
    ]
    return "-".join(str(p) for p in parts)


class CacheStore(Protocol):
    def get(self, inputs_hash: str) -> Optional[CacheEntry]:
        ...

    def upsert(self, entry: CacheEntry) -> None:
        ...

    def delete_expired(self, now: float, limit: Optional[int] = None) -> int:
        ...

    def clear(self) -> int:
        ...


class InMemoryCacheStore:
    def __init__(self):
        self._rows: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, inputs_hash: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._rows.get(inputs_hash)

    def upsert(self, entry: CacheEntry) -> None:
        with self._lock:
            self._rows[entry.inputs_hash] = entry

    def delete_expired(self, now: float, limit: Optional[int] = None) -> int:
        with self._lock:
            expired = [k for k, e in self._rows.items() if e.is_expired(now)]
            if limit is not None:
                expired = expired[:limit]
            for k in expired:
                del self._rows[k]
            return len(expired)

    def clear(self) -> int:
        with self._lock:
            n = len(self._rows)
            self._rows.clear()
            return n

    def __len__(self) -> int:
        return len(self._rows)


class SQLiteCacheStore:
    """Cache rows in a SQLite table, one row per ``inputs_hash``."""

    def __init__(self, db_file: str = "runway_cache.db"):
        # each call opens its own connection, so ":memory:" would not persist
        self.db_file = db_file
        self._run('''
        CREATE TABLE IF NOT EXISTS SimulationCache (
            InputsHash TEXT PRIMARY KEY, Results TEXT NOT NULL,
            CreatedAt REAL NOT NULL, ExpiresAt REAL NOT NULL )''')
        self._run('CREATE INDEX IF NOT EXISTS idx_simulationcache_expires ON SimulationCache (ExpiresAt)')

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file)
        conn.row_factory = sqlite3.Row
        return conn

    def _run(self, sql: str, params: Tuple = ()):
        conn = None
        try:
            conn = self._connect()
            with conn:
                cur = conn.execute(sql, params)
                return cur.fetchone() if sql.lstrip().upper().startswith("SELECT") else cur.rowcount
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"cache database error: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def get(self, inputs_hash: str) -> Optional[CacheEntry]:
        row = self._run(
            "SELECT InputsHash, Results, CreatedAt, ExpiresAt FROM SimulationCache WHERE InputsHash = ?",
            (inputs_hash,),
        )
        if row is None:
            return None
        try:
            results = AggregatedResult.from_dict(json.loads(row["Results"]))
        except (ValueError, KeyError, TypeError) as e:
            raise CacheUnavailableError(f"unreadable cache row {inputs_hash}: {e}") from e
        return CacheEntry(
            inputs_hash=row["InputsHash"],
            results=results,
            created_at=row["CreatedAt"],
            expires_at=row["ExpiresAt"],
        )

    def upsert(self, entry: CacheEntry) -> None:
        self._run(
            "INSERT OR REPLACE INTO SimulationCache (InputsHash, Results, CreatedAt, ExpiresAt) VALUES (?, ?, ?, ?)",
            (entry.inputs_hash, json.dumps(entry.results.to_dict()), entry.created_at, entry.expires_at),
        )

    def delete_expired(self, now: float, limit: Optional[int] = None) -> int:
        if limit is None:
            return self._run("DELETE FROM SimulationCache WHERE ExpiresAt < ?", (now,))
        return self._run(
            "DELETE FROM SimulationCache WHERE InputsHash IN "
            "(SELECT InputsHash FROM SimulationCache WHERE ExpiresAt < ? LIMIT ?)",
            (now, int(limit)),
        )

    def clear(self) -> int:
        return self._run("DELETE FROM SimulationCache")


class ResultCache:
    """TTL policy on top of a :class:`CacheStore`.

    ``clock`` returns the current time in epoch seconds; tests substitute a
    fake one to step past expiry.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        config: SimulationConfig = DEFAULT_CONFIG,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryCacheStore()
        self.config = config
        self.clock = clock

    def get(self, sim: SimulationInput) -> Optional[CacheEntry]:
        key = inputs_hash(sim)
        try:
            entry = self.store.get(key)
        except CacheUnavailableError as e:
            logger.warning("cache read failed, recomputing: %s", e)
            return None
        if entry is None:
            logger.info("cache miss for %s", key)
            return None
        if entry.is_expired(self.clock()):
            logger.info("cache entry for %s expired", key)
            return None
        logger.info("cache hit for %s", key)
        return entry

    def put(self, sim: SimulationInput, results: AggregatedResult) -> Optional[CacheEntry]:
        now = self.clock()
        entry = CacheEntry(
            inputs_hash=inputs_hash(sim),
            results=results.without_detail(),
            created_at=now,
            expires_at=now + self.config.cache_ttl_seconds,
        )
        try:
            self.store.upsert(entry)
            purged = self.store.delete_expired(now, self.config.expired_purge_limit)
        except CacheUnavailableError as e:
            logger.warning("cache write failed, result not cached: %s", e)
            return None
        if purged:
            logger.debug("purged %d expired cache entries", purged)
        return entry

    def clear(self) -> int:
        try:
            return self.store.clear()
        except CacheUnavailableError as e:
            logger.warning("cache clear failed: %s", e)
            return 0


def simulate_with_cache(
    sim: SimulationInput,
    cache: Optional[ResultCache],
    iterations: Optional[int] = None,
    skip_cache: bool = False,
    seed: Seed = None,
    workers: Optional[int] = None,
    sampler_factory: SamplerFactory = BoxMullerSampler,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> Tuple[AggregatedResult, bool, Optional[float]]:
    """``(result, from_cache, cached_at)``; computes and stores on a miss."""
    validate_input(sim)
    if cache is not None and not skip_cache:
        entry = cache.get(sim)
        if entry is not None:
            return entry.results, True, entry.created_at

    result = run_simulations(sim, iterations, seed=seed, workers=workers,
                             sampler_factory=sampler_factory, config=config)
    if cache is not None:
        cache.put(sim, result)
    return result, False, None

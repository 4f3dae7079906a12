"""
Transaction generation.

A `TransactionGenerator` builds fully-formed transactions from the shared,
read-only reference data. Fixed-count runs fan out over a thread pool where
every worker owns its own `random.Random`; the only state the workers share
is the `SequenceCounter`, whose lock is held for the increment alone.
"""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from txn_producer.domain.models import ReferenceData, Transaction
from txn_producer.errors import GenerationCancelled, GenerationError
from txn_producer.utils.logging import get_logger

log = get_logger(__name__)

Emit = Callable[[Transaction], bool]
Progress = Callable[[int], None]

VENDOR_CODES: Tuple[str, ...] = (
    "PRAGMATIC",
    "EVOLUTION",
    "NETENT",
    "MICROGAMING",
    "PLAYTECH",
    "EGT",
    "PLAYSON",
)
BET_AMOUNTS: Tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("10", "50", "100", "200", "500", "1000")
)
# Duplicate zeros skew outcomes toward losses.
WIN_MULTIPLIERS: Tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("0", "0", "0.5", "0.8", "1.0", "1.5", "2.0", "3.0", "5.0", "10.0")
)
ROUND_SIZE = 10
VENDOR_ID_MAX = 10
PROGRESS_CHUNK = 1_000

_MONEY = Decimal("0.000001")


def scale_bet_amount(base: Decimal, currency_code: str) -> Decimal:
    """Scale a menu bet amount into the currency's typical magnitude."""
    if currency_code == "BTC":
        return base / 10_000
    if currency_code == "ETH":
        return base / 1_000
    if currency_code == "JPY":
        return base * 100
    if currency_code == "CNY":
        return base * 7
    return base


def format_money(value: Decimal) -> str:
    return f"{value.quantize(_MONEY):f}"


def split_ranges(count: int, workers: int) -> List[Tuple[int, int]]:
    """
    Partition ``[0, count)`` into contiguous ranges, one per worker.

    The last range absorbs the remainder of the integer division. Never
    returns more ranges than records.
    """
    if count <= 0:
        return []
    workers = max(1, min(workers, count))
    per_worker = count // workers
    ranges = []
    for index in range(workers):
        start = index * per_worker
        end = count if index == workers - 1 else start + per_worker
        ranges.append((start, end))
    return ranges


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SequenceCounter:
    """Monotonic record counter shared by all workers of one run."""

    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value


@dataclass(frozen=True)
class GenerationContext:
    """Everything a worker needs: reference tables, the run's counter and a clock."""

    reference_data: ReferenceData
    sequence: SequenceCounter = field(default_factory=SequenceCounter)
    clock: Callable[[], datetime] = _utc_now


class TransactionGenerator:
    """
    Produce transactions, standalone or across a pool of worker threads.

    Parameters
    ----------
    context : GenerationContext
        Reference data and the run-scoped sequence counter.
    seed : int, optional
        Base seed for reproducible runs. Worker ``i`` is seeded with
        ``seed + i``; without a seed the high-resolution clock is used.
    """

    def __init__(self, context: GenerationContext, seed: Optional[int] = None) -> None:
        self.context = context
        self.seed = seed
        self._rng = self._make_rng(0)

    def _make_rng(self, index: int) -> random.Random:
        base = self.seed if self.seed is not None else time.perf_counter_ns()
        return random.Random(base + index)

    def generate_one(self, rng: Optional[random.Random] = None) -> Transaction:
        rng = rng or self._rng
        refs = self.context.reference_data
        seq = self.context.sequence.next()
        now = self.context.clock()

        currency = rng.choice(refs.currencies)
        category = rng.choice(refs.game_categories)
        master_agent_id = rng.choice(refs.master_agent_ids)
        agent = rng.choice(refs.agents_by_master_id[master_agent_id])
        vendor_code = rng.choice(VENDOR_CODES)
        vendor_id = rng.randint(1, VENDOR_ID_MAX)

        bet = scale_bet_amount(rng.choice(BET_AMOUNTS), currency.code).quantize(_MONEY)
        win = (bet * rng.choice(WIN_MULTIPLIERS)).quantize(_MONEY)
        win_loss = win - bet

        # Values are built correctly by construction; skip per-record validation.
        return Transaction.model_construct(
            id=f"TXN-{now:%Y%m%d}-{seq:08d}",
            external_transaction_id=f"EXT-{vendor_code}-{seq:08d}",
            vendor_bet_id=f"BET-{seq:08d}",
            round_id=f"ROUND-{seq // ROUND_SIZE:08d}",
            vendor_id=vendor_id,
            vendor_code=vendor_code,
            vendor_line_id=1,
            game_category_id=category.id,
            house_id=1,
            master_agent_id=agent.master_agent_id,
            agent_id=agent.id,
            currency_id=currency.id,
            currency_code=currency.code,
            bet_amount=format_money(bet),
            win_amount=format_money(win),
            win_loss=format_money(win_loss),
            settled_at=now.isoformat(timespec="seconds"),
        )

    def _run_range(
        self,
        index: int,
        start: int,
        end: int,
        emit: Emit,
        should_stop: Callable[[], bool],
        on_progress: Optional[Progress],
    ) -> Tuple[int, bool]:
        rng = self._make_rng(index)
        emitted = 0
        pending = 0
        finished = False
        try:
            for _ in range(start, end):
                if should_stop() or not emit(self.generate_one(rng)):
                    break
                emitted += 1
                pending += 1
                if on_progress and pending >= PROGRESS_CHUNK:
                    on_progress(pending)
                    pending = 0
            else:
                finished = True
        finally:
            if on_progress and pending:
                on_progress(pending)
        log.debug(
            "Generator worker finished",
            extra={"worker": index, "range_start": start, "range_end": end, "emitted": emitted},
        )
        return emitted, finished

    def generate_batch(
        self,
        count: int,
        workers: int,
        emit: Emit,
        cancel: threading.Event,
        on_progress: Optional[Progress] = None,
    ) -> int:
        """
        Generate ``count`` records across ``workers`` threads.

        Returns
        -------
        int
            Number of records accepted by ``emit``.

        Raises
        ------
        GenerationCancelled
            If ``cancel`` was set (or ``emit`` refused a record) before every
            worker completed its range.
        GenerationError
            If a worker failed; the remaining workers are stopped.
        """
        ranges = split_ranges(count, workers)
        if not ranges:
            return 0

        abort = threading.Event()

        def should_stop() -> bool:
            return cancel.is_set() or abort.is_set()

        def run(index: int, start: int, end: int) -> Tuple[int, bool]:
            try:
                return self._run_range(index, start, end, emit, should_stop, on_progress)
            except Exception:
                abort.set()
                raise

        with ThreadPoolExecutor(
            max_workers=len(ranges), thread_name_prefix="generator"
        ) as pool:
            futures: List[Future[Tuple[int, bool]]] = [
                pool.submit(run, index, start, end) for index, (start, end) in enumerate(ranges)
            ]
            pending = set(futures)
            # Timed waits keep the calling thread responsive to signals.
            while pending:
                _, pending = wait(pending, timeout=0.2, return_when=FIRST_EXCEPTION)

        emitted = 0
        complete = True
        for future in futures:
            exc = future.exception()
            if exc is not None:
                raise GenerationError(f"Generator worker failed: {exc}") from exc
            worker_emitted, finished = future.result()
            emitted += worker_emitted
            complete = complete and finished

        if not complete:
            raise GenerationCancelled(emitted)
        return emitted

    def run_continuous(
        self,
        emit: Emit,
        cancel: threading.Event,
        on_progress: Optional[Progress] = None,
    ) -> int:
        """Generate on the calling thread until ``cancel`` is set or ``emit`` refuses."""
        emitted = 0
        pending = 0
        try:
            while not cancel.is_set():
                if not emit(self.generate_one()):
                    break
                emitted += 1
                pending += 1
                if on_progress and pending >= PROGRESS_CHUNK:
                    on_progress(pending)
                    pending = 0
        finally:
            if on_progress and pending:
                on_progress(pending)
        return emitted


__all__ = [
    "BET_AMOUNTS",
    "WIN_MULTIPLIERS",
    "VENDOR_CODES",
    "ROUND_SIZE",
    "GenerationContext",
    "SequenceCounter",
    "TransactionGenerator",
    "format_money",
    "scale_bet_amount",
    "split_ranges",
]

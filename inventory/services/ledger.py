"""
Ledger interfaces consumed by the document engine, plus an in-process
implementation.

Readers return advisory snapshots. Writers re-check every counter while
holding the lock of each unit involved, so a check and its decrement can
never be split by a concurrent writer.
"""
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Tuple

from inventory.choices import Counter, UnitType, COMPOSITE_COUNTERS
from inventory.domain import Adjustment, StockSnapshot
from inventory.services.results import AdjustResult, InsufficientStock

logger = logging.getLogger(__name__)


class LedgerReader:
    def get(self, stock_unit_id) -> Optional[StockSnapshot]:
        raise NotImplementedError


class LedgerWriter:
    def apply(self,
              adjustments: Iterable[Adjustment],
              reference: str = "",
              actor_id: Optional[int] = None,
              notes: str = "") -> AdjustResult:
        raise NotImplementedError

    def adjust(self,
               stock_unit_id,
               delta: int,
               counter: Optional[str] = None,
               **context) -> AdjustResult:
        return self.apply(
            [Adjustment(stock_unit_id, delta, str(counter or Counter.AVAILABLE))],
            **context
        )


class Ledger(LedgerReader, LedgerWriter):
    pass


def plan_adjustments(adjustments: Iterable[Adjustment],
                     current: Dict[Tuple[int, str], int]) -> Tuple[Dict[Tuple[int, str], int], Optional[InsufficientStock]]:
    """
    Fold adjustments over current counter values.

    Returns the target value of every touched counter, or the first deficit.
    Deltas on the same counter accumulate, so two lines drawing on one unit
    are checked against their combined demand.
    """
    targets: Dict[Tuple[int, str], int] = {}
    demand: Dict[Tuple[int, str], int] = defaultdict(int)

    for adj in adjustments:
        key = (adj.stock_unit_id, str(adj.counter))
        before = targets.get(key, current[key])
        after = adj.set_to if adj.set_to is not None else before + adj.delta
        if adj.set_to is None and adj.delta < 0:
            demand[key] += -adj.delta
        if after < 0:
            return {}, InsufficientStock(
                unit=adj.stock_unit_id,
                requested=demand[key] or -adj.delta,
                available=current[key],
                counter=key[1],
            )
        targets[key] = after

    return targets, None


class InMemoryLedger(Ledger):
    """
    Thread-safe ledger kept in process memory.

    Each stock unit has its own lock; multi-unit commits take the locks in
    ascending id order.
    """

    def __init__(self):
        self._units: Dict[int, Dict[str, int]] = {}
        self._types: Dict[int, str] = {}
        self._names: Dict[int, str] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self.movements: List[Dict] = []

    # ==================== SETUP ====================

    def add_unit(self,
                 stock_unit_id: int,
                 available_quantity: int = 0,
                 unit_type: str = UnitType.INVENTORY,
                 name: str = "",
                 **counters) -> StockSnapshot:
        values = {str(Counter.AVAILABLE): available_quantity}
        if unit_type == UnitType.ACCESSORY:
            for counter in COMPOSITE_COUNTERS:
                values[str(counter)] = 0
        for key, value in counters.items():
            if key not in values:
                raise ValueError(f"Unknown counter for {unit_type}: {key}")
            values[key] = value

        if any(v < 0 for v in values.values()):
            raise ValueError("Counters cannot start negative")

        with self._registry_lock:
            self._units[stock_unit_id] = values
            self._types[stock_unit_id] = unit_type
            self._names[stock_unit_id] = name
            self._locks.setdefault(stock_unit_id, threading.Lock())
        return self.get(stock_unit_id)

    # ==================== READ ====================

    def get(self, stock_unit_id) -> Optional[StockSnapshot]:
        if stock_unit_id not in self._units:
            return None
        with self._lock_for(stock_unit_id):
            return self._snapshot(stock_unit_id)

    def _snapshot(self, stock_unit_id) -> StockSnapshot:
        return StockSnapshot(
            stock_unit_id=stock_unit_id,
            unit_type=self._types[stock_unit_id],
            counters=dict(self._units[stock_unit_id]),
            name=self._names[stock_unit_id],
        )

    # ==================== WRITE ====================

    def _lock_for(self, stock_unit_id) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(stock_unit_id, threading.Lock())

    @contextmanager
    def locked(self, stock_unit_ids: Iterable[int]):
        locks = [self._lock_for(uid) for uid in sorted(set(stock_unit_ids))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()

    def apply(self,
              adjustments: Iterable[Adjustment],
              reference: str = "",
              actor_id: Optional[int] = None,
              notes: str = "") -> AdjustResult:
        adjustments = list(adjustments)
        unit_ids = {adj.stock_unit_id for adj in adjustments}
        missing = [uid for uid in unit_ids if uid not in self._units]
        if missing:
            raise KeyError(f"Unknown stock units: {sorted(missing)}")

        with self.locked(unit_ids):
            current = {}
            for adj in adjustments:
                key = (adj.stock_unit_id, str(adj.counter))
                values = self._units[adj.stock_unit_id]
                if key[1] not in values:
                    raise KeyError(f"Stock unit {adj.stock_unit_id} has no counter {key[1]}")
                current[key] = values[key[1]]

            targets, deficit = plan_adjustments(adjustments, current)
            if deficit:
                logger.info(
                    f"Rejected commit {reference or '-'}: unit {deficit.unit} "
                    f"{deficit.counter} needs {deficit.requested}, has {deficit.available}"
                )
                return AdjustResult(error=deficit)

            for (uid, counter), value in targets.items():
                before = self._units[uid][counter]
                self._units[uid][counter] = value
                self.movements.append({
                    "stock_unit_id": uid,
                    "counter": counter,
                    "quantity_before": before,
                    "quantity_after": value,
                    "reference": reference,
                    "actor_id": actor_id,
                    "notes": notes,
                })

        return AdjustResult(new_quantities=targets)

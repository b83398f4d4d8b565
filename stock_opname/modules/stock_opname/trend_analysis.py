"""
modules/stock_opname/trend_analysis.py

Pure read-side analysis of stock opname history. Never writes to the
session store or the history ledger.

analyze(current_items, history) works in two passes over the history
entries that survive parsing:

- newest first: per-item counts and the recent window (first 5 entries
  seen for the item);
- oldest first: longest minus/plus runs and the run still open at the
  latest entry (a zero difference closes both).

Only codes present in `current_items` are considered. Items with no
history at all are reported as first-time items after the analyzed ones.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

from ...constants import (
    CHRONIC_RUN_LENGTH,
    FREQUENT_SHORTAGE_PCT,
    OPEN_RUN_MIN_LENGTH,
    RARELY_OFF_PCT,
    RECENT_WINDOW,
)
from ...database.repositories.so_history_repo import SOHistoryLine, SOHistoryRecord
from ...errors import ParseError

__all__ = [
    "Status",
    "RunSign",
    "ItemStats",
    "StatusText",
    "ItemAnalysis",
    "ConsecutiveRunRecord",
    "ConsecutiveRuns",
    "TrendReport",
    "classify",
    "describe",
    "TrendAnalyzer",
]

_log = logging.getLogger(__name__)


class Status(str, Enum):
    FIRST_TIME = "First-time SO item"
    STABILIZED_SHORTAGE = "Previously chronic shortage, now stable"
    REVERSAL_FROM_SHORTAGE = "Pattern reversal from shortage"
    CHRONIC_SHORTAGE = "Chronic shortage"
    STABILIZED_OVERAGE = "Previously chronic overage, now stable"
    REVERSAL_FROM_OVERAGE = "Pattern reversal from overage"
    CHRONIC_OVERAGE = "Chronic overage"
    FREQUENT_SHORTAGE = "Frequent shortage"
    STABLE = "Stable, always exact"
    RARELY_OFF = "Rarely off"
    NORMAL = "Normal / mixed"

    @property
    def needs_monitoring(self) -> bool:
        return self in _MONITORED


_MONITORED = frozenset({
    Status.CHRONIC_SHORTAGE,
    Status.CHRONIC_OVERAGE,
    Status.FIRST_TIME,
    Status.REVERSAL_FROM_SHORTAGE,
    Status.REVERSAL_FROM_OVERAGE,
})


class RunSign(str, Enum):
    MINUS = "minus"
    PLUS = "plus"


@dataclass
class ItemStats:
    code: str
    name: str
    count: int = 0
    minus_count: int = 0
    plus_count: int = 0
    recent_minus_count: int = 0
    recent_plus_count: int = 0
    recent_normal_count: int = 0
    max_consecutive_minus: int = 0
    max_consecutive_plus: int = 0

    @property
    def minus_pct(self) -> float:
        return self.minus_count / self.count * 100 if self.count else 0.0

    @property
    def plus_pct(self) -> float:
        return self.plus_count / self.count * 100 if self.count else 0.0


@dataclass(frozen=True)
class StatusText:
    history: str
    recommendation: str
    recent_trend: str


@dataclass(frozen=True)
class ItemAnalysis:
    code: str
    name: str
    status: Status
    history_text: str
    recommendation: str
    recent_trend: str


@dataclass(frozen=True)
class ConsecutiveRunRecord:
    code: str
    name: str
    consecutive_count: int
    sign: RunSign


@dataclass(frozen=True)
class ConsecutiveRuns:
    minus: List[ConsecutiveRunRecord] = field(default_factory=list)
    plus: List[ConsecutiveRunRecord] = field(default_factory=list)


@dataclass(frozen=True)
class TrendReport:
    per_item: List[ItemAnalysis]
    monitoring: List[ItemAnalysis]
    consecutive_runs: ConsecutiveRuns


# -----------------------------
# Decision table
# -----------------------------

def classify(stats: ItemStats) -> Status:
    """First matching rule wins."""
    if stats.count <= 1:
        return Status.FIRST_TIME

    if stats.max_consecutive_minus >= CHRONIC_RUN_LENGTH:
        if stats.recent_minus_count == 0 and stats.recent_plus_count == 0:
            return Status.STABILIZED_SHORTAGE
        if stats.recent_plus_count > 0:
            return Status.REVERSAL_FROM_SHORTAGE
        return Status.CHRONIC_SHORTAGE

    if stats.max_consecutive_plus >= CHRONIC_RUN_LENGTH:
        if stats.recent_plus_count == 0 and stats.recent_minus_count == 0:
            return Status.STABILIZED_OVERAGE
        if stats.recent_minus_count > 0:
            return Status.REVERSAL_FROM_OVERAGE
        return Status.CHRONIC_OVERAGE

    if stats.minus_pct > FREQUENT_SHORTAGE_PCT:
        return Status.FREQUENT_SHORTAGE
    if stats.minus_count == 0 and stats.plus_count == 0:
        return Status.STABLE
    if stats.minus_pct < RARELY_OFF_PCT and stats.plus_pct < RARELY_OFF_PCT:
        return Status.RARELY_OFF
    return Status.NORMAL


def _window_mix(s: ItemStats) -> str:
    return (
        f"Minus {s.recent_minus_count}x, Plus {s.recent_plus_count}x, "
        f"Normal {s.recent_normal_count}x in the last {RECENT_WINDOW} SOs"
    )


def describe(status: Status, s: ItemStats, *, any_history: bool = True) -> StatusText:
    """
    Text shown next to a status. Depends only on its arguments; `any_history`
    is False when no history entry could be read at all.
    """
    if status is Status.FIRST_TIME:
        return StatusText(
            "This is the first SO for this item",
            "Monitor over the next few SOs",
            "First SO" if any_history else "No history yet",
        )
    if status is Status.STABILIZED_SHORTAGE:
        return StatusText(
            f"Minus {s.max_consecutive_minus}x in a row in the history, "
            f"but the last {s.recent_normal_count} SOs were exact",
            "Item has stabilized, check periodically",
            f"Normal {s.recent_normal_count}x recently, "
            f"previously minus {s.max_consecutive_minus}x in a row",
        )
    if status is Status.REVERSAL_FROM_SHORTAGE:
        return StatusText(
            f"Minus {s.max_consecutive_minus}x in a row in the history, "
            "but a plus pattern is now appearing",
            "Watch this pattern change closely",
            f"Plus {s.recent_plus_count}x, Normal {s.recent_normal_count}x, "
            f"Minus {s.recent_minus_count}x in the last {RECENT_WINDOW} SOs",
        )
    if status is Status.CHRONIC_SHORTAGE:
        return StatusText(
            f"Minus {s.max_consecutive_minus}x in a row across {s.count} SOs",
            "Needs closer supervision",
            f"Minus {s.recent_minus_count}x in the last {RECENT_WINDOW} SOs",
        )
    if status is Status.STABILIZED_OVERAGE:
        return StatusText(
            f"Plus {s.max_consecutive_plus}x in a row in the history, "
            f"but the last {s.recent_normal_count} SOs were exact",
            "Item has stabilized, check periodically",
            f"Normal {s.recent_normal_count}x recently, "
            f"previously plus {s.max_consecutive_plus}x in a row",
        )
    if status is Status.REVERSAL_FROM_OVERAGE:
        return StatusText(
            f"Plus {s.max_consecutive_plus}x in a row in the history, "
            "but a minus pattern is now appearing",
            "Watch this pattern change closely",
            f"Minus {s.recent_minus_count}x, Normal {s.recent_normal_count}x, "
            f"Plus {s.recent_plus_count}x in the last {RECENT_WINDOW} SOs",
        )
    if status is Status.CHRONIC_OVERAGE:
        return StatusText(
            f"Plus {s.max_consecutive_plus}x in a row across {s.count} SOs",
            "Needs closer supervision",
            f"Plus {s.recent_plus_count}x in the last {RECENT_WINDOW} SOs",
        )
    if status is Status.FREQUENT_SHORTAGE:
        return StatusText(
            f"{s.minus_count} of {s.count} SOs ended with a minus difference ({s.minus_pct:.1f}%)",
            "Investigate why this item keeps coming up short",
            _window_mix(s),
        )
    if status is Status.STABLE:
        return StatusText(
            f"Never minus or plus in {s.count} SOs",
            "Item is stable, no action needed",
            "Always exact (zero difference)",
        )
    if status is Status.RARELY_OFF:
        return StatusText(
            f"{s.minus_count} minus, {s.plus_count} plus out of {s.count} SOs",
            "Item is fairly stable, check periodically",
            _window_mix(s),
        )
    return StatusText(
        f"{s.minus_count} minus, {s.plus_count} plus out of {s.count} SOs",
        "Item is normal, no action needed",
        _window_mix(s),
    )


# -----------------------------
# History walking
# -----------------------------

@dataclass
class _RunTracker:
    name: str
    minus: int = 0
    plus: int = 0
    max_minus: int = 0
    max_plus: int = 0

    def push(self, difference: int) -> None:
        if difference < 0:
            self.minus += 1
            self.plus = 0
            self.max_minus = max(self.max_minus, self.minus)
        elif difference > 0:
            self.plus += 1
            self.minus = 0
            self.max_plus = max(self.max_plus, self.plus)
        else:
            self.minus = 0
            self.plus = 0


_Entry = Tuple[datetime, int, List[SOHistoryLine]]


def _sort_key(dt: datetime) -> datetime:
    # aware timestamps (e.g. ...Z from older clients) compare as local naive time
    return dt.astimezone().replace(tzinfo=None) if dt.tzinfo else dt


def _parse_entries(history: Iterable[SOHistoryRecord]) -> List[_Entry]:
    entries: List[_Entry] = []
    for record in history:
        try:
            entries.append((_sort_key(record.parsed_date()), record.collision_index, record.lines()))
        except ParseError as e:
            _log.warning("Skipping SO history entry: %s", e)
    return entries


class TrendAnalyzer:
    """Classifies each counted item from the history of completed counts."""

    def analyze(self, current_items: Sequence, history: Iterable[SOHistoryRecord]) -> TrendReport:
        current: Dict[str, str] = {}
        for item in current_items:
            current.setdefault(item.code, item.name)

        entries = _parse_entries(history)
        # same-second records are ordered by their id collision suffix
        oldest_first = sorted(entries, key=lambda e: (e[0], e[1]))
        newest_first = oldest_first[::-1]

        stats = self._window_stats(newest_first, current)
        trackers = self._run_trackers(oldest_first, current)
        for code, st in stats.items():
            tr = trackers[code]
            st.max_consecutive_minus = tr.max_minus
            st.max_consecutive_plus = tr.max_plus

        any_history = bool(entries)
        per_item = [self._analysis(st, any_history) for st in stats.values()]
        per_item += [
            self._analysis(ItemStats(code=code, name=name), any_history)
            for code, name in current.items()
            if code not in stats
        ]

        return TrendReport(
            per_item=per_item,
            monitoring=[a for a in per_item if a.status.needs_monitoring],
            consecutive_runs=self._open_runs(trackers),
        )

    # ---- passes ----

    @staticmethod
    def _window_stats(newest_first: List[_Entry], current: Dict[str, str]) -> Dict[str, ItemStats]:
        stats: Dict[str, ItemStats] = {}
        for _, _, lines in newest_first:
            for ln in lines:
                if ln.code not in current:
                    continue
                st = stats.get(ln.code)
                if st is None:
                    st = stats[ln.code] = ItemStats(code=ln.code, name=ln.name)
                st.count += 1
                in_window = st.count <= RECENT_WINDOW
                if ln.difference < 0:
                    st.minus_count += 1
                    if in_window:
                        st.recent_minus_count += 1
                elif ln.difference > 0:
                    st.plus_count += 1
                    if in_window:
                        st.recent_plus_count += 1
                elif in_window:
                    st.recent_normal_count += 1
        return stats

    @staticmethod
    def _run_trackers(oldest_first: List[_Entry], current: Dict[str, str]) -> Dict[str, _RunTracker]:
        trackers: Dict[str, _RunTracker] = {}
        for _, _, lines in oldest_first:
            for ln in lines:
                if ln.code not in current:
                    continue
                tr = trackers.get(ln.code)
                if tr is None:
                    tr = trackers[ln.code] = _RunTracker(name=ln.name)
                tr.push(ln.difference)
        return trackers

    @staticmethod
    def _open_runs(trackers: Dict[str, _RunTracker]) -> ConsecutiveRuns:
        runs = ConsecutiveRuns()
        for code, tr in trackers.items():
            if tr.minus >= OPEN_RUN_MIN_LENGTH:
                runs.minus.append(ConsecutiveRunRecord(code, tr.name, tr.minus, RunSign.MINUS))
            if tr.plus >= OPEN_RUN_MIN_LENGTH:
                runs.plus.append(ConsecutiveRunRecord(code, tr.name, tr.plus, RunSign.PLUS))
        return runs

    @staticmethod
    def _analysis(st: ItemStats, any_history: bool) -> ItemAnalysis:
        status = classify(st)
        text = describe(status, st, any_history=any_history)
        return ItemAnalysis(
            code=st.code,
            name=st.name,
            status=status,
            history_text=text.history,
            recommendation=text.recommendation,
            recent_trend=text.recent_trend,
        )

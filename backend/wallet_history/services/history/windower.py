# backend/wallet_history/services/history/windower.py
"""
Timeframe windower.

Maps a symbolic timeframe to an absolute cutoff and to the gap-filling
policy used when the ledger does not reach back far enough:

    | Timeframe | Lookback | Gap interval | Max synthetic points | Ledger budget |
    |-----------|----------|--------------|----------------------|---------------|
    | day       | 24h      | 2h           | 12                   | 100           |
    | week      | 7d       | 1d           | 7                    | 200           |
    | month     | 30d      | 2d           | 15                   | 300           |
    | year      | 365d     | 14d          | 26                   | 500           |

The values are policy constants; a TimeframeWindower can be built with a
different table.
"""

from collections.abc import Mapping
from datetime import datetime, timedelta
from types import MappingProxyType

from wallet_history.services.history.types import (
    Timeframe,
    TimeframePolicy,
    TimeframeWindow,
)
from wallet_history.utils.time_utils import ensure_utc, utc_now

DEFAULT_POLICIES: Mapping[Timeframe, TimeframePolicy] = MappingProxyType({
    Timeframe.DAY: TimeframePolicy(
        lookback=timedelta(hours=24),
        gap_interval=timedelta(hours=2),
        max_synthetic_points=12,
        max_ledger_events=100,
    ),
    Timeframe.WEEK: TimeframePolicy(
        lookback=timedelta(days=7),
        gap_interval=timedelta(days=1),
        max_synthetic_points=7,
        max_ledger_events=200,
    ),
    Timeframe.MONTH: TimeframePolicy(
        lookback=timedelta(days=30),
        gap_interval=timedelta(days=2),
        max_synthetic_points=15,
        max_ledger_events=300,
    ),
    Timeframe.YEAR: TimeframePolicy(
        lookback=timedelta(days=365),
        gap_interval=timedelta(days=14),
        max_synthetic_points=26,
        max_ledger_events=500,
    ),
})


class TimeframeWindower:
    """Resolves timeframes against "now" using a policy table."""

    def __init__(self, policies: Mapping[Timeframe, TimeframePolicy] | None = None) -> None:
        table = dict(policies if policies is not None else DEFAULT_POLICIES)
        missing = [tf.value for tf in Timeframe if tf not in table]
        if missing:
            raise ValueError(f"Missing timeframe policies: {', '.join(missing)}")
        self._policies = MappingProxyType(table)

    def policy(self, timeframe: Timeframe | str) -> TimeframePolicy:
        return self._policies[Timeframe.parse(timeframe)]

    def window(self, timeframe: Timeframe | str, now: datetime | None = None) -> TimeframeWindow:
        """
        Resolve a timeframe to its window.

        Raises:
            InvalidTimeframeError: If the timeframe is not recognized
        """
        tf = Timeframe.parse(timeframe)
        policy = self._policies[tf]
        anchor = ensure_utc(now) if now is not None else utc_now()

        return TimeframeWindow(
            timeframe=tf,
            now=anchor,
            cutoff=anchor - policy.lookback,
            gap_interval=policy.gap_interval,
            max_synthetic_points=policy.max_synthetic_points,
            max_ledger_events=policy.max_ledger_events,
        )

    def policy_for_span(self, span: timedelta) -> TimeframePolicy:
        """Smallest policy whose lookback covers `span` (largest if none does)."""
        ordered = sorted(self._policies.values(), key=lambda p: p.lookback)
        for policy in ordered:
            if policy.lookback >= span:
                return policy
        return ordered[-1]


_default_windower = TimeframeWindower()


def window(timeframe: Timeframe | str, now: datetime | None = None) -> TimeframeWindow:
    """Resolve a timeframe with the default policy table."""
    return _default_windower.window(timeframe, now)

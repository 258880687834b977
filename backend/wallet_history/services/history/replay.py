# backend/wallet_history/services/history/replay.py
"""
Portfolio replay engine.

Reconstructs a valuation series by walking an account's balance events
backward from the known present:

1. Anchor: a point at "now" valued at current balance x current price.
2. Baseline: the balance before the cutoff is the sum of every delta
   strictly before the cutoff (0 when there is none; the boundary point is
   then flagged as an estimate).
3. Replay: events in [cutoff, now) are undone newest-first from the
   current balance, one point per event.
4. Guard: an event whose undo would make the balance negative is skipped
   and the running balance is left unchanged.
5. Gap filling: when fewer than 3 points exist, or the oldest real point is
   after the cutoff, synthetic points are stepped back from the oldest real
   point at the policy interval (strictly after the cutoff, at most the
   policy's point budget). Their balance decays linearly from the oldest
   replayed balance toward the baseline in proportion to elapsed time.
6. Points are sorted ascending by timestamp.

Which balance an event point reports is configurable (PointAlignment); the
default reports the balance that held up to the event, so a +20 receipt an
hour ago on a 100 balance yields 80 x price at that instant.

Balance bookkeeping is done in a first, price-free pass; all needed price
buckets are then prefetched concurrently before the walk queries them in
order. The engine keeps no state between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from wallet_history.services.constants import MIN_SERIES_POINTS
from wallet_history.services.exceptions import InvalidBalanceError, InvalidInputError
from wallet_history.services.history.types import (
    PointAlignment,
    PointKind,
    PortfolioPoint,
    ReplayResult,
    TimeframePolicy,
)
from wallet_history.services.history.windower import TimeframeWindower
from wallet_history.services.ledger.types import BalanceEvent
from wallet_history.services.pricing.cache import HistoricalPriceCache
from wallet_history.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class _PlannedPoint:
    """A point whose balance is known but whose price is not yet fetched."""
    timestamp: datetime
    balance: Decimal
    kind: PointKind
    event_id: str | None = None
    estimated: bool = False


class PortfolioReplayEngine:
    """
    Replays balance events backward into a valuation series.

    Args:
        symbol: Asset symbol used for price lookups
        alignment: Which balance event points report
        windower: Source of the gap-filling policy when none is given
    """

    def __init__(
            self,
            symbol: str,
            alignment: PointAlignment = PointAlignment.BEFORE_EVENT,
            windower: TimeframeWindower | None = None,
    ) -> None:
        if not symbol or not symbol.strip():
            raise InvalidInputError("symbol is required", field="symbol")
        self._symbol = symbol.strip().upper()
        self._alignment = alignment
        self._windower = windower or TimeframeWindower()

    @property
    def symbol(self) -> str:
        return self._symbol

    async def replay(
            self,
            current_balance: Decimal,
            current_price: Decimal,
            events: Sequence[BalanceEvent],
            cutoff: datetime,
            prices: HistoricalPriceCache,
            *,
            now: datetime | None = None,
            gap_policy: TimeframePolicy | None = None,
    ) -> ReplayResult:
        """
        Build the valuation series for [cutoff, now].

        Args:
            current_balance: Holding at "now" (natural units, >= 0)
            current_price: Spot price at "now" (>= 0)
            events: Balance events for the account (any order; not mutated)
            cutoff: Earliest instant to represent
            prices: Per-invocation price cache
            now: Anchor instant (defaults to the current time)
            gap_policy: Gap-filling policy (derived from the span if omitted)

        Returns:
            ReplayResult with points sorted ascending by timestamp

        Raises:
            InvalidBalanceError: If current_balance is negative
            InvalidInputError: If current_price is negative, or the cutoff is
                missing or later than now
        """
        current_balance = _as_decimal(current_balance, "current_balance")
        current_price = _as_decimal(current_price, "current_price")
        if current_balance < 0:
            raise InvalidBalanceError(current_balance, "cannot be negative")
        if current_price < 0:
            raise InvalidInputError(
                f"Invalid current price {current_price}: cannot be negative",
                field="current_price",
            )
        if cutoff is None:
            raise InvalidInputError("cutoff is required", field="cutoff")

        now = ensure_utc(now) if now is not None else utc_now()
        cutoff = ensure_utc(cutoff)
        if cutoff > now:
            raise InvalidInputError(
                f"cutoff {cutoff.isoformat()} is later than now {now.isoformat()}",
                field="cutoff",
            )

        policy = gap_policy or self._windower.policy_for_span(now - cutoff)
        result = self._plan(current_balance, events, cutoff, now, policy)
        plan = result.pop("plan")

        await prices.prefetch(self._symbol, [p.timestamp for p in plan])

        points = [PortfolioPoint(
            timestamp=now,
            value=current_balance * current_price,
            balance=current_balance,
            price=current_price,
            kind=PointKind.CURRENT,
        )]
        for planned in plan:
            price = await prices.price_near(self._symbol, planned.timestamp)
            points.append(PortfolioPoint(
                timestamp=planned.timestamp,
                value=planned.balance * price,
                balance=planned.balance,
                price=price,
                kind=planned.kind,
                event_id=planned.event_id,
                estimated=planned.estimated,
            ))

        points.sort(key=lambda p: p.sort_key)

        replay_result = ReplayResult(points=points, **result)
        logger.debug(
            f"Replayed {replay_result.replayed_event_count} events for {self._symbol}: "
            f"{len(points)} points, {replay_result.synthetic_count} synthetic, "
            f"{len(replay_result.skipped_event_ids)} skipped"
        )
        return replay_result

    # =========================================================================
    # PLANNING (no I/O)
    # =========================================================================

    def _plan(
            self,
            current_balance: Decimal,
            events: Sequence[BalanceEvent],
            cutoff: datetime,
            now: datetime,
            policy: TimeframePolicy,
    ) -> dict:
        """
        Compute every non-anchor point's timestamp and balance.

        Planned points are returned in walk order: window events newest
        first, then synthetic points newest first, then the boundary.
        """
        ordered = sorted(events, key=lambda e: (e.timestamp, e.id))
        warnings: list[str] = []

        before_cutoff = [e for e in ordered if e.timestamp < cutoff]
        in_window = [e for e in ordered if cutoff <= e.timestamp < now]
        after_now = len(ordered) - len(before_cutoff) - len(in_window)
        if after_now:
            warnings.append(f"Ignored {after_now} event(s) timestamped at or after now")

        baseline = sum((e.delta for e in before_cutoff), _ZERO)

        plan: list[_PlannedPoint] = []
        skipped: list[str] = []
        running = current_balance

        for event in reversed(in_window):
            before = running - event.delta
            if before < 0:
                logger.warning(
                    f"Skipping event {event.id}: undoing delta {event.delta} "
                    f"from balance {running} would go negative"
                )
                skipped.append(event.id)
                continue

            shown = before if self._alignment == PointAlignment.BEFORE_EVENT else running
            plan.append(_PlannedPoint(
                timestamp=event.timestamp,
                balance=shown,
                kind=PointKind.EVENT,
                event_id=event.id,
            ))
            running = before

        if skipped:
            warnings.append(
                f"Skipped {len(skipped)} event(s) inconsistent with the current balance; "
                "the ledger is likely incomplete"
            )

        boundary_balance = baseline
        if baseline < 0:
            warnings.append("Balance before the window is negative in the ledger; clamped to 0")
            boundary_balance = _ZERO
        if not before_cutoff:
            warnings.append("No ledger history before the window start; starting balance is estimated")

        real_points = 1 + len(plan) + 1
        oldest_real = plan[-1].timestamp if plan else now
        synthetic: list[_PlannedPoint] = []
        if real_points < MIN_SERIES_POINTS or oldest_real > cutoff:
            synthetic = self._fill_gap(
                start=oldest_real,
                start_balance=running,
                cutoff=cutoff,
                target_balance=boundary_balance,
                policy=policy,
            )
        plan.extend(synthetic)

        plan.append(_PlannedPoint(
            timestamp=cutoff,
            balance=boundary_balance,
            kind=PointKind.BOUNDARY,
            estimated=not before_cutoff,
        ))

        return {
            "plan": plan,
            "baseline_balance": baseline,
            "oldest_balance": running,
            "replayed_event_count": len(in_window) - len(skipped),
            "skipped_event_ids": skipped,
            "synthetic_count": len(synthetic),
            "warnings": warnings,
        }

    @staticmethod
    def _fill_gap(
            start: datetime,
            start_balance: Decimal,
            cutoff: datetime,
            target_balance: Decimal,
            policy: TimeframePolicy,
    ) -> list[_PlannedPoint]:
        """Synthetic points stepping back from `start`, newest first."""
        span = (start - cutoff) // _MICROSECOND
        if span <= 0 or policy.max_synthetic_points == 0:
            return []

        points = []
        ts = start - policy.gap_interval
        while ts > cutoff and len(points) < policy.max_synthetic_points:
            ratio = Decimal((start - ts) // _MICROSECOND) / Decimal(span)
            balance = start_balance + (target_balance - start_balance) * ratio
            points.append(_PlannedPoint(
                timestamp=ts,
                balance=max(balance, _ZERO),
                kind=PointKind.ESTIMATE,
                estimated=True,
            ))
            ts -= policy.gap_interval
        return points


def _as_decimal(value: object, name: str) -> Decimal:
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidInputError(f"{name} must be finite", field=name)
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidInputError(f"{name} must be a number, got {type(value).__name__}", field=name)
    try:
        result = Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidInputError(f"{name} is not a number: {value!r}", field=name) from e
    if not result.is_finite():
        raise InvalidInputError(f"{name} must be finite", field=name)
    return result

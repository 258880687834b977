# backend/wallet_history/services/history/__init__.py
"""
Portfolio history: timeframe windowing, backward replay and orchestration.

Components:
    - TimeframeWindower: timeframe -> cutoff + gap-filling policy
    - PortfolioReplayEngine: events + anchor -> valuation series
    - PortfolioHistoryService: ledger + oracle -> PortfolioHistory

Usage:
    from wallet_history.services.history import PortfolioHistoryService
"""

from wallet_history.services.history.replay import PortfolioReplayEngine
from wallet_history.services.history.service import PortfolioHistoryService
from wallet_history.services.history.types import (
    PointAlignment,
    PointKind,
    PortfolioHistory,
    PortfolioPoint,
    ReplayResult,
    Timeframe,
    TimeframePolicy,
    TimeframeWindow,
)
from wallet_history.services.history.windower import (
    DEFAULT_POLICIES,
    TimeframeWindower,
    window,
)

__all__ = [
    "PortfolioReplayEngine",
    "PortfolioHistoryService",
    "PointAlignment",
    "PointKind",
    "PortfolioHistory",
    "PortfolioPoint",
    "ReplayResult",
    "Timeframe",
    "TimeframePolicy",
    "TimeframeWindow",
    "DEFAULT_POLICIES",
    "TimeframeWindower",
    "window",
]

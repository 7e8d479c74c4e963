"""Strategy router: picks the estimator for a source id, once per id."""

import re
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from freshgate.core.config import default_filter_mode
from freshgate.core.logger import logger
from freshgate.core.metrics import MetricsSink
from freshgate.estimators.base import DateEstimator
from freshgate.estimators.bloomberg import BloombergEstimator
from freshgate.estimators.financial_times import FinancialTimesEstimator
from freshgate.estimators.maeil import MaeilEstimator
from freshgate.estimators.marketwatch import MarketWatchEstimator
from freshgate.estimators.universal import ContentScanSettings, UniversalEstimator
from freshgate.models.datatypes import SourcePolicy
from freshgate.providers.base import HttpFetcher


def normalize_source_id(name: str) -> str:
    """``"Bloomberg Economics"`` -> ``"bloomberg_economics"``."""
    return re.sub(r"[^a-z0-9]+", "_", (name or "").strip().lower()).strip("_")


class StrategyRouter:
    """Resolve source ids to estimators; unmatched sources use the universal estimator.

    Args:
        estimators: Specialised estimators, tried in order.
        fallback: Estimator for every unmatched source.
    """

    def __init__(self, estimators: Sequence[DateEstimator], fallback: UniversalEstimator) -> None:
        self.estimators = list(estimators)
        self.fallback = fallback
        self._resolved: Dict[str, DateEstimator] = {}
        self._lock = threading.Lock()

    def resolve(self, source_id: str) -> DateEstimator:
        with self._lock:
            estimator = self._resolved.get(source_id)
            if estimator is None:
                estimator = next((e for e in self.estimators if e.supports(source_id)), self.fallback)
                self._resolved[source_id] = estimator
                logger.info(f"StrategyRouter: source={source_id} -> {type(estimator).__name__}")
            return estimator

    def policy(self, source_id: str) -> SourcePolicy:
        return self.resolve(source_id).policy(source_id)

    def max_age_hours(self, source_id: str) -> int:
        return self.resolve(source_id).max_age_hours(source_id)

    def start_run(self) -> None:
        self.fallback.start_run()


def build_router(
    config: Mapping[str, Any],
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    fetcher: Optional[HttpFetcher] = None,
    metrics: Optional[MetricsSink] = None,
    now_fn: Callable[[], datetime] = datetime.now,
) -> StrategyRouter:
    """Build the shipped estimator set from the parsed configuration."""
    settings = ContentScanSettings.from_config(config.get("content_scan"))
    filter_mode = default_filter_mode(dict(config))
    universal = UniversalEstimator(
        fetcher=fetcher,
        settings=settings,
        max_age_hours=int((config.get("universal") or {}).get("max_age_hours", 72)),
        metrics=metrics,
        overrides=overrides,
        now_fn=now_fn,
        default_filter_mode=filter_mode,
    )
    specialised = [
        cls(overrides=overrides, now_fn=now_fn, default_filter_mode=filter_mode)
        for cls in (BloombergEstimator, FinancialTimesEstimator, MarketWatchEstimator, MaeilEstimator)
    ]
    return StrategyRouter(specialised, universal)

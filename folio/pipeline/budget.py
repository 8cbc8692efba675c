"""
Budget ledger.

Tracks cumulative translation spend per calendar month (UTC) against a
ceiling, gates translator calls before they happen, and raises alerts when
spend crosses the alert threshold or the ceiling.

Spend is only ever added through an atomic increment, so concurrent
workers never lose each other's cost. A check is a read; a check followed
by a spend is not a reservation, so concurrent workers may overshoot the
ceiling by at most their in-flight calls.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from folio.config import Settings, get_settings
from folio.core.errors import BudgetExceededError, NotFoundError
from folio.core.events import EventBus, budget_alert
from folio.core.models import AlertKind, BudgetAlert, BudgetPeriod
from folio.core.utils import month_key, utc_now
from folio.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)


class BudgetLedger:
    """
    Monthly spend against a ceiling.

    Usage:
        ledger = BudgetLedger(storage)
        await ledger.check_available()   # raises BudgetExceededError
        ...call the translator...
        await ledger.record_spend(usage.cost_usd)
    """

    def __init__(
        self,
        storage: StorageProvider,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
        event_bus: EventBus | None = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self.clock = clock
        self.event_bus = event_bus

    @property
    def _db(self):
        return self.storage.metadata

    # =========================================================================
    # Periods
    # =========================================================================

    async def _latest_period(self) -> BudgetPeriod | None:
        docs = await self._db.query(Collections.BUDGET_PERIODS, limit=10000)
        if not docs:
            return None
        return BudgetPeriod(**max(docs, key=lambda d: d["month"]))

    async def current_period(self) -> BudgetPeriod:
        """
        The period for the current month, created on first use.

        A new month starts at zero spend and inherits the previous month's
        ceiling and threshold.
        """
        month = month_key(self.clock())
        data = await self._db.get(Collections.BUDGET_PERIODS, month)
        if data:
            return BudgetPeriod(**data)

        previous = await self._latest_period()
        period = BudgetPeriod(
            month=month,
            ceiling_usd=previous.ceiling_usd if previous else self.settings.budget_ceiling_usd,
            alert_threshold_pct=(
                previous.alert_threshold_pct if previous
                else self.settings.budget_alert_threshold_pct
            ),
        )
        created = await self._db.update_where(
            Collections.BUDGET_PERIODS, month, None, period.model_dump(mode="json")
        )
        if created:
            logger.info(
                "Opened budget period %s: ceiling $%.2f, alert at %.0f%%",
                month, period.ceiling_usd, period.alert_threshold_pct,
            )
            return period

        # Another caller opened it first
        return BudgetPeriod(**await self._db.get(Collections.BUDGET_PERIODS, month))

    async def list_periods(self) -> list[BudgetPeriod]:
        docs = await self._db.query(Collections.BUDGET_PERIODS, limit=10000)
        return sorted((BudgetPeriod(**d) for d in docs), key=lambda p: p.month, reverse=True)

    # =========================================================================
    # Gate and spend
    # =========================================================================

    async def check_available(self) -> BudgetPeriod:
        """
        Gate a translator call.

        Raises:
            BudgetExceededError: spend has reached the ceiling this month
        """
        period = await self.current_period()
        if period.is_exhausted:
            raise BudgetExceededError(period.spent_usd, period.ceiling_usd, period.month)
        return period

    async def record_spend(self, amount_usd: float) -> BudgetPeriod:
        """Add a call's cost to the current period and raise any due alerts."""
        if amount_usd < 0:
            raise ValueError(f"Spend must not be negative: {amount_usd}")

        period = await self.current_period()
        if amount_usd == 0:
            return period

        spent = await self._db.increment(
            Collections.BUDGET_PERIODS, period.month, "spent_usd", amount_usd
        )
        await self._db.update(
            Collections.BUDGET_PERIODS, period.month, {"updated_at": utc_now().isoformat()}
        )
        period = BudgetPeriod(**await self._db.get(Collections.BUDGET_PERIODS, period.month))
        logger.debug(
            "Recorded $%.6f against %s (total $%.4f of $%.2f)",
            amount_usd, period.month, spent, period.ceiling_usd,
        )

        await self._raise_alerts(period)
        return period

    # =========================================================================
    # Administration
    # =========================================================================

    async def update(
        self,
        ceiling_usd: float | None = None,
        alert_threshold_pct: float | None = None,
    ) -> BudgetPeriod:
        """Change the current period's ceiling and/or alert threshold."""
        if ceiling_usd is not None and ceiling_usd <= 0:
            raise ValueError("Budget ceiling must be greater than zero")
        if alert_threshold_pct is not None and not 0 < alert_threshold_pct <= 100:
            raise ValueError("Alert threshold must be between 0 and 100")

        period = await self.current_period()
        updates: dict[str, Any] = {"updated_at": utc_now().isoformat()}
        if ceiling_usd is not None:
            updates["ceiling_usd"] = ceiling_usd
        if alert_threshold_pct is not None:
            updates["alert_threshold_pct"] = alert_threshold_pct
        await self._db.update(Collections.BUDGET_PERIODS, period.month, updates)

        period = BudgetPeriod(**await self._db.get(Collections.BUDGET_PERIODS, period.month))
        logger.info(
            "Budget %s updated: ceiling $%.2f, alert at %.0f%%",
            period.month, period.ceiling_usd, period.alert_threshold_pct,
        )
        await self._raise_alerts(period)
        return period

    # =========================================================================
    # Alerts
    # =========================================================================

    async def _raise_alerts(self, period: BudgetPeriod) -> list[BudgetAlert]:
        raised: list[BudgetAlert] = []
        if period.is_over_threshold and not period.is_exhausted:
            alert = BudgetAlert(
                id=f"alert_{period.month}_{AlertKind.THRESHOLD.value}",
                month=period.month,
                alert_type=AlertKind.THRESHOLD,
                severity="warning",
                title="Translation budget threshold reached",
                message=(
                    f"{period.spent_pct:.0f}% of the ${period.ceiling_usd:.2f} "
                    f"budget for {period.month} has been used"
                ),
                metadata=period.snapshot(),
            )
            if await self._create_alert(alert):
                raised.append(alert)
        if period.is_exhausted:
            alert = BudgetAlert(
                id=f"alert_{period.month}_{AlertKind.EXCEEDED.value}",
                month=period.month,
                alert_type=AlertKind.EXCEEDED,
                severity="critical",
                title="Translation budget exceeded",
                message=(
                    f"${period.spent_usd:.2f} spent of ${period.ceiling_usd:.2f} for "
                    f"{period.month}; translations are paused until the budget is raised"
                ),
                metadata=period.snapshot(),
            )
            if await self._create_alert(alert):
                raised.append(alert)
        return raised

    async def _create_alert(self, alert: BudgetAlert) -> bool:
        """Insert once per (month, kind)."""
        created = await self._db.update_where(
            Collections.BUDGET_ALERTS, alert.id, None, alert.model_dump(mode="json")
        )
        if created:
            logger.warning("%s: %s", alert.title, alert.message)
            if self.event_bus:
                await self.event_bus.publish(
                    budget_alert(alert.month, alert.alert_type.value, alert_id=alert.id)
                )
        return created

    async def list_alerts(self, include_resolved: bool = False) -> list[BudgetAlert]:
        filters = None if include_resolved else {"is_resolved": False}
        docs = await self._db.query(Collections.BUDGET_ALERTS, filters=filters, limit=10000)
        return sorted((BudgetAlert(**d) for d in docs), key=lambda a: a.created_at, reverse=True)

    async def resolve_alert(self, alert_id: str) -> BudgetAlert:
        data = await self._db.get(Collections.BUDGET_ALERTS, alert_id)
        if data is None:
            raise NotFoundError(f"Alert not found: {alert_id}")
        alert = BudgetAlert(**data)
        alert.resolve()
        await self._db.save(Collections.BUDGET_ALERTS, alert.id, alert.model_dump(mode="json"))
        return alert

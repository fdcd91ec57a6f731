"""
Business Intelligence Service

Holds the CRM aggregates for one session and keeps them fresh:
  - fans out the four pulse aggregates concurrently and applies each
    result independently (a failed call leaves its slot untouched)
  - fetches yearly goal progress on demand
  - forwards target / goal mutations and re-fetches afterwards
  - re-fetches on change-feed events for the watched year

Overlapping refreshes resolve latest-request-wins: every fetch takes a
generation number and results from a superseded generation are dropped.
"""
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import asyncio

from bizpulse.connectors.crm_gateway import CRMGateway
from bizpulse.connectors.realtime import ChangeEvent, ChangeFeed, Channel
from bizpulse.models.crm import (
    BusinessPulse,
    GeoInsight,
    GoalProgress,
    IntelligenceReport,
    SalespersonPerformance,
)
from bizpulse.services.pulse_insights import PriorityAction, generate_actions, generate_insights
from bizpulse.config import get_settings
from bizpulse.utils.helpers import business_today
from bizpulse.utils.logger import log

settings = get_settings()

REALTIME_CHANNEL = "crm-realtime"
VOUCHERS_TABLE = "vouchers"
GOALS_TABLE = "crm_goals"


class BusinessIntelligenceService:
    """Session state and refresh orchestration for the CRM dashboard"""

    def __init__(
        self,
        gateway: CRMGateway,
        feed: Optional[ChangeFeed] = None,
        clock: Optional[Callable[[], datetime]] = None,
        today: Optional[Callable[[], date]] = None
    ):
        self.gateway = gateway
        self.feed = feed
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._today = today or (lambda: business_today(settings.timezone))

        self.is_loading = False
        self.error: Optional[str] = None
        self.pulse: Optional[BusinessPulse] = None
        self.salesperson_rankings: List[SalespersonPerformance] = []
        self.city_performance: List[GeoInsight] = []
        self.intelligence_report: Optional[IntelligenceReport] = None
        self.goal_progress: Optional[GoalProgress] = None
        self.goal_year: Optional[int] = None
        self.last_updated: Optional[datetime] = None

        self._pulse_generation = 0
        self._goal_generation = 0
        self._report_generation = 0

        self.realtime_year: Optional[int] = None
        self._channel: Optional[Channel] = None

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch_business_pulse(self):
        """
        Refresh pulse, salesperson rankings, city performance and the
        intelligence report in one concurrent batch.

        Each call settles on its own; failures are logged and leave the
        previous value in place. Only an error raised by the orchestration
        itself lands in ``self.error``.
        """
        self._pulse_generation += 1
        generation = self._pulse_generation
        self.is_loading = True
        self.error = None

        try:
            results = await asyncio.gather(
                self.gateway.get_business_pulse(),
                self.gateway.get_salesperson_rankings(),
                self.gateway.get_city_performance(),
                self.gateway.get_intelligence_report(),
                return_exceptions=True
            )

            if generation != self._pulse_generation:
                log.debug(f"Discarding stale pulse batch (generation {generation})")
                return

            pulse_result, rankings_result, city_result, report_result = results

            if self._settled(pulse_result, "business pulse"):
                self.pulse = pulse_result
            if self._settled(rankings_result, "salesperson rankings"):
                self.salesperson_rankings = rankings_result
            if self._settled(city_result, "city performance"):
                self.city_performance = city_result
            if self._settled(report_result, "intelligence report"):
                self.intelligence_report = report_result

            self.last_updated = self._clock()

        except Exception as e:
            log.error(f"Error fetching business intelligence: {str(e)}")
            if generation == self._pulse_generation:
                self.error = str(e) or "Failed to fetch business intelligence"
        finally:
            if generation == self._pulse_generation:
                self.is_loading = False

    @staticmethod
    def _settled(result: Any, label: str) -> bool:
        if isinstance(result, BaseException):
            log.error(f"Failed to fetch {label}: {type(result).__name__}: {str(result)}")
            return False
        return True

    async def fetch_intelligence_report(self):
        """Refresh only the intelligence report; failures are logged"""
        self._report_generation += 1
        generation = self._report_generation
        try:
            report = await self.gateway.get_intelligence_report()
        except Exception as e:
            log.error(f"Error fetching intelligence report: {str(e)}")
            return
        if generation == self._report_generation:
            self.intelligence_report = report

    async def fetch_goal_progress(self, year: int) -> Optional[GoalProgress]:
        """
        Fetch goal progress for a fiscal year.

        Returns the fetched progress, or None when the call failed (the
        failure is logged). The shared slot only takes the result of the
        latest request.
        """
        self._goal_generation += 1
        generation = self._goal_generation
        try:
            progress = await self.gateway.get_yearly_goal_progress(year)
        except Exception as e:
            log.error(f"Error fetching goal progress for {year}: {str(e)}")
            return None
        if generation == self._goal_generation:
            self.goal_progress = progress
            self.goal_year = year
        return progress

    def goal_for(self, year: int) -> Optional[GoalProgress]:
        """Stored goal progress, only if it belongs to ``year``"""
        if self.goal_year != year:
            return None
        return self.goal_progress

    # ------------------------------------------------------------------
    # Mutations (errors propagate to the caller)
    # ------------------------------------------------------------------

    async def set_monthly_target(self, amount: float) -> bool:
        try:
            await self.gateway.set_monthly_target(amount)
        except Exception as e:
            log.error(f"Error setting target: {str(e)}")
            raise
        await self.fetch_business_pulse()
        return True

    async def set_yearly_goal(
        self,
        year: int,
        amount: float,
        breakdown: Optional[Dict[str, Any]] = None
    ) -> bool:
        try:
            await self.gateway.set_yearly_goal(year, amount, breakdown)
        except Exception as e:
            log.error(f"Error setting yearly goal: {str(e)}")
            raise
        await self.fetch_goal_progress(year)
        return True

    # ------------------------------------------------------------------
    # Derivations
    # ------------------------------------------------------------------

    def today(self) -> date:
        """Current date in the business timezone"""
        return self._today()

    def generate_insights(self, today: Optional[date] = None) -> List[str]:
        return generate_insights(self.pulse, today or self.today())

    def generate_actions(self) -> List[PriorityAction]:
        return generate_actions(self.pulse)

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def watch_year(self, year: Optional[int]):
        """
        Re-fetch on voucher and goal changes for ``year``.

        The previous channel is removed before a new one is joined, so a
        single change never reaches two handlers. ``None`` stops watching.
        """
        if self.feed is None:
            return
        if year == self.realtime_year and self._channel is not None:
            return

        await self._unwatch()

        if year is None:
            return

        self.realtime_year = year
        channel = self.feed.channel(REALTIME_CHANNEL)
        channel.on(VOUCHERS_TABLE, lambda change: self._on_voucher_change(change, year))
        channel.on(GOALS_TABLE, lambda change: self._on_goal_change(change, year))
        self._channel = channel
        await channel.subscribe()

    async def _unwatch(self):
        if self._channel is not None:
            channel, self._channel = self._channel, None
            await self.feed.remove_channel(channel)
        self.realtime_year = None

    async def _on_voucher_change(self, change: ChangeEvent, year: int):
        log.info(f"[Realtime] {change.table} {change.event_type}, refreshing aggregates")
        await asyncio.gather(
            self.fetch_business_pulse(),
            self.fetch_goal_progress(year)
        )

    async def _on_goal_change(self, change: ChangeEvent, year: int):
        log.info(f"[Realtime] {change.table} {change.event_type}, refreshing goal progress")
        await self.fetch_goal_progress(year)

    async def close(self):
        await self._unwatch()

    def snapshot(self) -> Dict[str, Any]:
        """Current state as plain data"""
        return {
            "is_loading": self.is_loading,
            "error": self.error,
            "pulse": self.pulse.model_dump() if self.pulse else None,
            "salesperson_rankings": [s.model_dump() for s in self.salesperson_rankings],
            "city_performance": [c.model_dump() for c in self.city_performance],
            "intelligence_report": self.intelligence_report.model_dump() if self.intelligence_report else None,
            "goal_progress": self.goal_progress.model_dump() if self.goal_progress else None,
            "goal_year": self.goal_year,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

"""
Shared fakes for the CRM tests.

Nothing here talks to a network: the gateway and the change feed are
replaced by in-memory doubles that record what was asked of them.
"""
import os

# Keep test runs off the filesystem and away from the realtime socket
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ENABLE_REALTIME", "false")
os.environ.setdefault("ENABLE_MEETING_NOTIFICATIONS", "false")

import pytest

from bizpulse.connectors.realtime import ChangeFeed
from bizpulse.models.crm import BusinessPulse, GoalProgress, IntelligenceReport


class FakeGateway:
    """In-memory CRMGateway; set ``failures[method] = exc`` to make a call raise"""

    def __init__(self, pulse=None, rankings=None, cities=None, report=None, goal=None, meetings=None):
        self.pulse = pulse if pulse is not None else BusinessPulse()
        self.rankings = rankings or []
        self.cities = cities or []
        self.report = report if report is not None else IntelligenceReport()
        self.goal = goal if goal is not None else GoalProgress(success=False, message="No goal set")
        self.meetings = meetings or []
        self.failures = {}
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures[name]

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    async def get_business_pulse(self):
        self._record("get_business_pulse")
        return self.pulse

    async def get_salesperson_rankings(self):
        self._record("get_salesperson_rankings")
        return self.rankings

    async def get_city_performance(self):
        self._record("get_city_performance")
        return self.cities

    async def get_intelligence_report(self):
        self._record("get_intelligence_report")
        return self.report

    async def get_yearly_goal_progress(self, year):
        self._record("get_yearly_goal_progress", year)
        return self.goal

    async def set_monthly_target(self, amount):
        self._record("set_monthly_target", amount)

    async def set_yearly_goal(self, year, amount, breakdown=None):
        self._record("set_yearly_goal", year, amount, breakdown)

    async def list_meetings(self, user_id=None):
        self._record("list_meetings", user_id)
        return self.meetings


class FakeChangeFeed(ChangeFeed):
    """Change feed that records joins and leaves instead of using a socket"""

    def __init__(self):
        super().__init__()
        self.joins = []
        self.leaves = []

    async def _send_join(self, channel):
        self.joins.append(channel.name)

    async def _send_leave(self, channel):
        self.leaves.append(channel.name)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def feed():
    return FakeChangeFeed()

"""
Meeting reminders

Polls the user's meetings on a fixed interval and raises two reminders
per meeting: a warning about two minutes before start and a "starting
now" alert within thirty seconds of start. Each reminder fires once per
notifier; the de-duplication set belongs to this instance only.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional, Set
from zoneinfo import ZoneInfo

from bizpulse.config import get_settings
from bizpulse.connectors.crm_gateway import CRMGateway, MEETINGS_TABLE
from bizpulse.connectors.realtime import ChangeEvent, ChangeFeed, Channel
from bizpulse.models.meetings import Meeting
from bizpulse.utils.helpers import business_now
from bizpulse.utils.logger import log

settings = get_settings()

# Minutes before start; the poll interval is 10s so the window must be wider than that
WARNING_WINDOW = (1.83, 2.17)
START_WINDOW = 0.5

Stage = Literal["warning", "now"]


@dataclass(frozen=True)
class MeetingReminder:
    meeting_id: str
    stage: Stage
    title: str
    body: str

    @property
    def key(self) -> str:
        return f"{self.meeting_id}-{self.stage}"


def build_reminder(meeting: Meeting, stage: Stage, tz_name: str = "Asia/Kolkata") -> MeetingReminder:
    start = _aware(meeting.start_time).astimezone(ZoneInfo(tz_name)).strftime("%I:%M %p")
    if stage == "warning":
        title = f"⏰ Meeting in 2 Minutes: {meeting.title}"
        body = f"Get ready! Starting at {start}"
    else:
        title = f"🔔 Meeting Starting Now: {meeting.title}"
        body = f"Your meeting is starting right now at {start}"
    return MeetingReminder(meeting_id=meeting.id, stage=stage, title=title, body=body)


def _aware(value: datetime) -> datetime:
    # timestamps without an offset are stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _log_reminder(reminder: MeetingReminder):
    log.warning(f"[NOTIFICATION {reminder.stage}] {reminder.title} - {reminder.body}")


class MeetingNotifier:
    """Reminder loop for one user's meetings"""

    def __init__(
        self,
        gateway: CRMGateway,
        user_id: Optional[str] = None,
        deliver: Optional[Callable[[MeetingReminder], None]] = None,
        feed: Optional[ChangeFeed] = None,
        tz_name: Optional[str] = None
    ):
        self.gateway = gateway
        self.user_id = user_id
        self.deliver = deliver or _log_reminder
        self.feed = feed
        self.tz_name = tz_name or settings.timezone
        self.meetings: List[Meeting] = []
        self._notified: Set[str] = set()
        self._channel: Optional[Channel] = None

    async def refresh_meetings(self):
        try:
            self.meetings = await self.gateway.list_meetings(self.user_id)
        except Exception as e:
            log.error(f"Failed to fetch meetings: {str(e)}")

    def check_meetings(self, now: Optional[datetime] = None) -> List[MeetingReminder]:
        """
        Scan meetings once and deliver any reminder that is due and not yet sent.

        Canceled meetings and meetings created by someone else are skipped.
        """
        now = _aware(now) if now else business_now(self.tz_name)
        sent: List[MeetingReminder] = []

        for meeting in self.meetings:
            if meeting.status == "canceled":
                continue
            if self.user_id and meeting.created_by != self.user_id:
                continue

            minutes_until_start = (_aware(meeting.start_time) - now).total_seconds() / 60

            if WARNING_WINDOW[0] <= minutes_until_start <= WARNING_WINDOW[1]:
                sent.extend(self._notify_once(meeting, "warning"))

            if abs(minutes_until_start) <= START_WINDOW:
                sent.extend(self._notify_once(meeting, "now"))

        return sent

    def _notify_once(self, meeting: Meeting, stage: Stage) -> List[MeetingReminder]:
        key = f"{meeting.id}-{stage}"
        if key in self._notified:
            return []
        reminder = build_reminder(meeting, stage, self.tz_name)
        self._notified.add(key)
        try:
            self.deliver(reminder)
        except Exception as e:
            log.error(f"Reminder delivery failed for {meeting.title}: {str(e)}")
        log.info(f"[ALERT] {stage} reminder sent for: {meeting.title}")
        return [reminder]

    async def poll(self):
        """Scheduler entry point"""
        self.check_meetings()

    async def start(self):
        """Load meetings, follow changes to them and run a first scan"""
        await self.refresh_meetings()

        if self.feed is not None and self._channel is None:
            channel = self.feed.channel("crm_meetings_changes")
            channel.on(
                MEETINGS_TABLE,
                self._on_meeting_change,
                filter=f"created_by=eq.{self.user_id}" if self.user_id else None,
            )
            self._channel = channel
            await channel.subscribe()

        self.check_meetings()

    async def stop(self):
        if self._channel is not None:
            channel, self._channel = self._channel, None
            await self.feed.remove_channel(channel)

    async def _on_meeting_change(self, change: ChangeEvent):
        log.debug(f"[Realtime] crm_meetings {change.event_type}")
        await self.refresh_meetings()

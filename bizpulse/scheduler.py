"""
Scheduler for recurring in-process jobs

Uses APScheduler's asyncio scheduler so jobs run on the application's
event loop alongside the realtime handlers.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bizpulse.config import get_settings
from bizpulse.services.meeting_notifications import MeetingNotifier
from bizpulse.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()

MEETING_REMINDER_JOB = "meeting_reminders"


def schedule_meeting_reminders(notifier: MeetingNotifier, interval_seconds: int = None):
    """Poll meetings every ``interval_seconds`` (default from settings)"""
    scheduler.add_job(
        notifier.poll,
        trigger=IntervalTrigger(seconds=interval_seconds or settings.meeting_poll_interval_seconds),
        id=MEETING_REMINDER_JOB,
        name="Meeting Reminder Poll",
        replace_existing=True,
        max_instances=1
    )


def start_scheduler():
    """Start the scheduler"""
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        log.info("Scheduler stopped")

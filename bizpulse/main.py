"""
BizPulse CRM Intelligence
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from bizpulse.config import get_settings
from bizpulse.utils.logger import log
from bizpulse import __version__

# Import routers
from bizpulse.api import health, crm
from bizpulse.connectors.backend_client import BackendClient
from bizpulse.connectors.crm_gateway import CRMGateway
from bizpulse.connectors.realtime import RealtimeClient
from bizpulse.services.business_intelligence_service import BusinessIntelligenceService
from bizpulse.services.meeting_notifications import MeetingNotifier

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    gateway = CRMGateway(BackendClient())
    feed = RealtimeClient() if settings.enable_realtime else None
    service = BusinessIntelligenceService(gateway, feed=feed)
    app.state.bi_service = service

    await service.fetch_business_pulse()

    try:
        await service.watch_year(settings.realtime_year or service.today().year)
    except Exception as e:
        log.error(f"Realtime subscription error: {str(e)}")

    notifier = None
    if settings.enable_meeting_notifications:
        try:
            from bizpulse.scheduler import schedule_meeting_reminders, start_scheduler
            notifier = MeetingNotifier(gateway, user_id=settings.meeting_user_id, feed=feed)
            await notifier.start()
            schedule_meeting_reminders(notifier)
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    from bizpulse.scheduler import stop_scheduler
    stop_scheduler()
    if notifier is not None:
        await notifier.stop()
    await service.close()
    if feed is not None:
        await feed.close()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    CRM Business Intelligence

    Aggregates the ERP/CRM backend into a live sales dashboard:
    - Business pulse: revenue, deals, quotes, receivables and cash
    - Salesperson rankings and city performance
    - Intelligence report: churn, stockout, product matrix, gap analysis
    - Yearly goal progress with trajectory and daily action plan
    - Rule-based insights and priority actions

    Aggregates refresh on voucher and goal changes through the realtime feed.
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(crm.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bizpulse.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from config import settings
from models import Base, async_session, engine
from api.events import router as events_router
from core.websocket import router as ws_router
from services.alarm_logic import AlarmEvaluator
from services.automation_dispatch import RedisAutomationQueue
from services.event_processor import EventProcessor
from services.thumbnail_fetcher import PikoThumbnailClient
from services.thumbnail_gate import AutomationThumbnailAnalyzer, ThumbnailGate

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("fusion.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Fusion event pipeline starting... DEBUG=%s", settings.DEBUG)

    # Database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready: %s", settings.DATABASE_URL)

    # Redis
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=False)
    app.state.redis = redis
    logger.info("Redis connected: %s", settings.REDIS_URL)

    # Vendor HTTP (thumbnails)
    http = httpx.AsyncClient(timeout=settings.THUMBNAIL_FETCH_TIMEOUT, verify=False)
    thumbnail_client = PikoThumbnailClient(
        async_session,
        http,
        timeout=settings.THUMBNAIL_FETCH_TIMEOUT,
        size=settings.THUMBNAIL_SIZE,
    )

    gate = ThumbnailGate(
        redis,
        async_session,
        AutomationThumbnailAnalyzer(ttl=settings.THUMBNAIL_REQUIREMENTS_CACHE_TTL),
    )
    app.state.thumbnail_gate = gate

    # Event pipeline
    app.state.event_processor = EventProcessor(
        redis,
        async_session,
        RedisAutomationQueue(redis, settings.AUTOMATION_QUEUE_KEY),
        thumbnail_gate=gate,
        thumbnail_client=thumbnail_client,
        alarm_evaluator=AlarmEvaluator(async_session),
    )
    logger.info("Event processor ready (automation queue: %s)", settings.AUTOMATION_QUEUE_KEY)

    yield

    # Shutdown
    logger.info("Fusion event pipeline shutting down...")
    await thumbnail_client.close()
    await redis.aclose()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Fusion Event API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events_router)
app.include_router(ws_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}

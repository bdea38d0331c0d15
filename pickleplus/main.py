"""Pickle+ booking API application."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pickleplus.api import audit, calendar, facilities, health
from pickleplus.core.database import init_db
from pickleplus.core.settings import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup; the auto-cancel scheduler is a separate worker."""
    logger.info(f"Starting Pickle+ booking service (env={settings.env}, tz={settings.timezone})")
    await init_db()
    logger.info("Database ready, auto-cancel runs in pickleplus.workers.booking_scheduler")

    yield

    logger.info("Pickle+ booking service stopped")


app = FastAPI(
    title="Pickle+ Class Booking",
    description="Facility check-in, weekly class schedules and enrollment with waitlists",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Health checks stay at the root for load balancers
app.include_router(health.router)
for router in (facilities.router, calendar.router, audit.router):
    app.include_router(router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pickleplus.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=settings.env == "dev",
        proxy_headers=True,
        forwarded_allow_ips="*",
    )

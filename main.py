import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import articles
import auth
import comments
import fuel
import likes
from config import Settings
from database import connect, ensure_indexes
from errors import register_error_handlers
from fuel import DailyScheduler, FuelPriceService
from mailer import Mailer
from ratelimit import RateLimiter
from security import GoogleVerifier

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(level)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    mailer: Optional[Mailer] = None,
    google_verifier: Optional[GoogleVerifier] = None,
    fuel_service: Optional[FuelPriceService] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    db = db if db is not None else connect(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(app.state.db)
        if app.state.settings.fuel_scheduler_enabled:
            app.state.fuel_scheduler.start()
        try:
            yield
        finally:
            app.state.fuel_scheduler.stop()

    app = FastAPI(title="Content Platform Backend", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.state.settings = settings
    app.state.db = db
    app.state.mailer = mailer or Mailer(settings)
    app.state.google_verifier = google_verifier or GoogleVerifier(settings.google_client_id)
    app.state.like_limiter = RateLimiter(settings.like_rate_limit, settings.like_rate_window_sec)
    app.state.fuel_service = fuel_service or FuelPriceService(db, settings)
    app.state.fuel_scheduler = DailyScheduler(
        app.state.fuel_service.run_update, settings.fuel_schedule_hour, settings.fuel_schedule_minute
    )

    app.include_router(auth.router)
    app.include_router(articles.router)
    app.include_router(comments.router)
    app.include_router(likes.router)
    app.include_router(fuel.router)

    @app.get("/")
    def read_root():
        return {"message": "Content Platform Backend Running"}

    @app.get("/test")
    def test_database(request: Request):
        database = request.app.state.db
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": database.name,
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            response["collections"] = database.list_collection_names()[:10]
            response["connection_status"] = "Connected"
            response["database"] = "✅ Connected & Working"
        except Exception:
            logger.exception("Database check failed")
            response["database"] = "⚠️ Connected but Error"
        return response

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)

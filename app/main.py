"""Campus Market – FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import User, OneTimeCode, Order, AuditLog  # noqa: F401
from app.error_handlers import register_error_handlers
from app.routers import admin, auth, orders, uploads

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(uploads.router)
app.include_router(uploads.files_router)
app.include_router(orders.router)
app.include_router(admin.router)


_scheduler = None


@app.on_event("startup")
def startup():
    global _scheduler
    if settings.mailgun_api_key and settings.mailgun_domain:
        from_addr = settings.mailgun_from_email or ""
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if from_domain and from_domain != settings.mailgun_domain.lower():
            logger.warning("Mailgun from=%s does not match domain=%s; emails may not be delivered", from_addr, settings.mailgun_domain)
    elif not settings.sendgrid_api_key:
        logger.warning("No email provider configured; email codes will only be logged in development")

    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.warning("Database startup failed (tables skipped). Check DATABASE_URL. Error: %s", e)

    if settings.scheduler_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        from app.services.code_cleanup import run_code_cleanup_job
        _scheduler = BackgroundScheduler()
        _scheduler.add_job(run_code_cleanup_job, "interval", minutes=settings.code_purge_interval_minutes)
        _scheduler.start()
        logger.info("Code cleanup scheduled every %d minutes", settings.code_purge_interval_minutes)


@app.on_event("shutdown")
def shutdown():
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}

from quart import Quart, request
from quart_cors import cors
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import asyncio
import sentry_sdk
from sentry_sdk.integrations.quart import QuartIntegration
import time

from dms.config import CORS_ALLOWED_ORIGINS
from dms.database import SessionLocal
from dms.routes import register_blueprints
from dms.utils.logging_utils import logger, log_endpoint

KEEP_ALIVE_SECONDS = 240


def ping_db() -> bool:
    session = SessionLocal()
    try:
        session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"[DB] Ping failed: {e}")
        return False
    finally:
        session.close()


async def warmup_db(retries: int = 5, delay: float = 2):
    while retries > 0:
        if ping_db():
            logger.info("[Warmup] Database is ready.")
            return True
        retries -= 1
        logger.info(f"[Warmup] Waiting for DB... ({retries} left)")
        await asyncio.sleep(delay)
    logger.error("[Warmup] Gave up waiting for DB.")
    return False


async def keep_db_alive():
    """Periodic ping so idle pooled connections are not dropped by the host."""
    while True:
        await asyncio.sleep(KEEP_ALIVE_SECONDS)
        ping_db()


def create_app():
    app = Quart(__name__)

    # CORS before anything else
    app = cors(
        app,
        allow_origin=CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Content-Disposition"]
    )

    app.config.from_pyfile("config.py")

    if app.config.get("SENTRY_DSN"):
        sentry_sdk.init(
            dsn=app.config["SENTRY_DSN"],
            integrations=[
                QuartIntegration(),
            ],
            traces_sample_rate=0.2,
        )

    register_blueprints(app)

    # Request logging middleware
    @app.before_request
    async def before_request():
        request.start_time = time.time()

    @app.after_request
    async def after_request(response):
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000
            log_endpoint(
                endpoint_name=request.endpoint or request.path,
                duration_ms=duration_ms,
                status_code=response.status_code
            )
        return response

    @app.before_serving
    async def startup():
        await warmup_db()
        app.add_background_task(keep_db_alive)
        logger.info("AutoLab DMS backend started successfully")

    return app

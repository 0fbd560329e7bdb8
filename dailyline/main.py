import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from dailyline/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from dailyline.core.config import settings, validate_config  # noqa: E402
from dailyline.core.database import create_all_tables  # noqa: E402
from dailyline.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from dailyline.core.logging import configure_logging  # noqa: E402
from dailyline.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from dailyline.api import entries, health, internal, metrics, notifications, streaks  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("dailyline")
    logger.info("Starting dailyline backend...")
    app.state.startup_time = time.time()
    try:
        create_all_tables()
    except Exception as e:
        # /readyz reports the database as unavailable until this succeeds
        logger.warning(f"Table creation skipped: {e}")
    try:
        yield
    finally:
        logging.getLogger("dailyline").info("Stopping dailyline backend...")


app = FastAPI(title="dailyline - Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(streaks.router, tags=["streaks"])
app.include_router(entries.router, tags=["entries"])
app.include_router(notifications.router, tags=["notifications"])
app.include_router(internal.router, tags=["internal"])
app.include_router(health.router, tags=["health"])
app.include_router(health.root_router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])


@app.get("/")
def root():
    return {"service": "dailyline", "status": "ok"}

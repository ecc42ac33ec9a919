from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import time
from sqlalchemy.exc import OperationalError

from modeler.api import middleware
from modeler.api.errors import register_exception_handlers
from modeler.api.routes import router
from modeler.config import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from modeler.db.session import engine
from modeler.db.models import Base
from modeler.log import get_logger, setup_logging

setup_logging(LOG_LEVEL, LOG_FILE)
logger = get_logger(__name__)

app = FastAPI(
    title="Data Modeler",
    version="0.5.0",
)

# Last added runs first: CORS, security headers, audit log, rate limit, identity
app.middleware("http")(middleware.identity)
app.middleware("http")(middleware.rate_limit)
app.middleware("http")(middleware.request_logger)
app.middleware("http")(middleware.security_headers)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(router)


@app.on_event("startup")
def startup():
    retries = 5
    delay = 2

    for attempt in range(retries):
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("[STARTUP] database ready")
            return
        except OperationalError:
            logger.warning(f"[STARTUP] waiting for database... ({attempt + 1}/{retries})")
            time.sleep(delay)

    logger.error("[STARTUP] database unavailable, giving up")


@app.get("/health")
def health():
    return {"status": "ok"}

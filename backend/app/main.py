import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from app.database import init_models
from parley.realtime.hub import build_realtime_hub


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
        "context": {
            "()": "app.monitoring.log_context.ContextFormatter",
            "fmt": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
        "realtime": {
            "class": "logging.StreamHandler",
            "formatter": "context",
        },
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        "parley.realtime": {
            "handlers": ["realtime"],
            "level": "INFO",
            "propagate": False,
        },
        "app.services": {
            "handlers": ["realtime"],
            "level": "INFO",
            "propagate": False,
        },
    },
}


logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)


@app.get("/health", tags=["system"])
def health_check() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "ok", "environment": settings.environment}


@app.on_event("startup")
async def _startup() -> None:
    if settings.database_auto_create:
        init_models()
    app.state.realtime = build_realtime_hub(settings)
    logger.info("Realtime hub started")


@app.on_event("shutdown")
async def _shutdown() -> None:
    hub = getattr(app.state, "realtime", None)
    if hub is not None:
        await hub.shutdown()
        app.state.realtime = None


app.include_router(api_router, prefix="/api/v1")
app.include_router(ws_router)
app.include_router(metrics_router)

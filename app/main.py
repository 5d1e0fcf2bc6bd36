from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.routes.veo import router as veo_router

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# align uvicorn loggers with the service level
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("veo-service").setLevel(LOG_LEVEL)

log = logging.getLogger("veo-service")

settings = get_settings()

app = FastAPI(title="Veo Job Service", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials="*" not in settings.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(veo_router)

log.info(
    "startup",
    extra={
        "environment": settings.environment,
        "veo_model": settings.veo.model,
        "veo_configured": settings.veo.is_configured,
        "job_store": settings.firebase.job_store,
        "rehost_target": settings.storage.rehost_target,
    },
)


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "veo-job-service", "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}

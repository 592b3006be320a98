# relay/main.py
from typing import Optional
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import logging

from relay.core.settings import Settings, settings
from relay.dependencies import RateLimitExceeded, RelayServices, build_services
from relay.routers.contact import (
    contact_validation_handler,
    rate_limit_exceeded_handler,
    router as contact_router,
)
from relay.routers.health import router as health_router

log = logging.getLogger("uvicorn.error")


def create_app(cfg: Optional[Settings] = None, services: Optional[RelayServices] = None) -> FastAPI:
    cfg = cfg or settings
    app = FastAPI(title=cfg.api_title)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins(),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.state.services = services or build_services(cfg)
    log.info(f"[main] CORS origins = {cfg.allowed_origins()}")

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, contact_validation_handler)

    # Routers
    app.include_router(health_router)
    app.include_router(contact_router)

    return app


app = create_app()

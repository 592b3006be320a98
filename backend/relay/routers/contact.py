import logging

from fastapi import APIRouter, Depends, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from starlette.concurrency import run_in_threadpool

from relay.dependencies import (
    RateLimitExceeded,
    RelayServices,
    client_address,
    consume_rate_limit,
    enforce_rate_limit,
    get_services,
)
from relay.lib.contact import (
    MSG_INTERNAL,
    MSG_RATE_LIMITED,
    MSG_REQUIRED,
    Submission,
    handle_contact,
)

CONTACT_PATH = "/api/contact"

router = APIRouter(prefix="/api", tags=["contact"])
log = logging.getLogger("uvicorn.error")


class ContactIn(BaseModel):
    name: str = ""
    email: str = ""
    message: str = ""

    @field_validator("name", "email", "message", mode="before")
    @classmethod
    def non_text_is_empty(cls, v):
        return v if isinstance(v, str) else ""


def _envelope(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=headers)


def _rate_limited(retry_after: int) -> JSONResponse:
    return _envelope(429, MSG_RATE_LIMITED, headers={"Retry-After": str(retry_after)})


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    caller = client_address(request, request.app.state.services.settings.trust_proxy)
    log.warning(f"[contact] rate limit exceeded for {caller}")
    return _rate_limited(exc.retry_after)


async def contact_validation_handler(request: Request, exc: RequestValidationError):
    if request.url.path != CONTACT_PATH:
        return await request_validation_exception_handler(request, exc)

    # Undecodable JSON is rejected before dependencies run, so count it here
    decision = await run_in_threadpool(consume_rate_limit, request, request.app.state.services)
    if not decision.allowed:
        return _rate_limited(decision.retry_after)
    return _envelope(400, MSG_REQUIRED)


@router.post("/contact", dependencies=[Depends(enforce_rate_limit)])
def contact(payload: ContactIn, request: Request, services: RelayServices = Depends(get_services)):
    caller = client_address(request, services.settings.trust_proxy)
    sub = Submission.from_raw(payload.name, payload.email, payload.message)
    log.info(f"[contact] submission from {caller} (email={sub.email!r}, {len(sub.message)} chars)")

    try:
        result = handle_contact(sub, services.settings, services.verifier, services.mailer)
    except Exception:
        log.exception("[contact] unexpected failure while processing submission")
        return _envelope(500, MSG_INTERNAL)

    return JSONResponse(status_code=result.status_code, content=result.envelope())

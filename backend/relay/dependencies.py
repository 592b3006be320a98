# backend/relay/dependencies.py
from dataclasses import dataclass
from fastapi import Depends, Request

from relay.core.mailer import Mailer
from relay.core.ratelimit import RateLimitDecision, RateLimiter, build_rate_limiter
from relay.core.settings import Settings
from relay.core.verifier import MailVerifier
from relay.lib.contact import Sender, Verifier


@dataclass
class RelayServices:
    """Process-scoped collaborators, built once per app and shared by all requests."""
    settings: Settings
    verifier: Verifier
    mailer: Sender
    limiter: RateLimiter


def build_services(cfg: Settings) -> RelayServices:
    return RelayServices(
        settings=cfg,
        verifier=MailVerifier(
            cfg.mailboxlayer_api_key,
            cfg.mailboxlayer_url,
            timeout=cfg.verify_timeout_seconds,
        ),
        mailer=Mailer(
            cfg.smtp_host,
            cfg.smtp_port,
            cfg.email_user,
            cfg.email_pass,
            timeout=cfg.smtp_timeout_seconds,
        ),
        limiter=build_rate_limiter(cfg),
    )


def get_services(request: Request) -> RelayServices:
    return request.app.state.services


def client_address(request: Request, trust_proxy: bool = False) -> str:
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimitExceeded(Exception):
    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"retry after {retry_after}s")


def consume_rate_limit(request: Request, services: RelayServices) -> RateLimitDecision:
    """Count this request once, however often it is asked for."""
    decision = getattr(request.state, "rate_limit", None)
    if decision is None:
        decision = services.limiter.hit(client_address(request, services.settings.trust_proxy))
        request.state.rate_limit = decision
    return decision


def enforce_rate_limit(request: Request, services: RelayServices = Depends(get_services)) -> RateLimitDecision:
    decision = consume_rate_limit(request, services)
    if not decision.allowed:
        raise RateLimitExceeded(decision.retry_after)
    return decision

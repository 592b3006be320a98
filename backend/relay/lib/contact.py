import re
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from relay.core.mailer import MailDeliveryError, OutboundMail, build_contact_mail
from relay.core.settings import Settings
from relay.core.verifier import (
    VerificationResult,
    VerificationServiceError,
    VerificationUnavailable,
)

log = logging.getLogger("uvicorn.error")

MAX_MESSAGE_LENGTH = 2000
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MSG_REQUIRED = "All fields are required."
MSG_BAD_FORMAT = "Invalid email format."
MSG_TOO_LONG = f"Message is too long (maximum {MAX_MESSAGE_LENGTH} characters)."
MSG_CONFIG = "Server configuration error."
MSG_VERIFY_DOWN = "Email verification is unavailable. Please try again later."
MSG_VERIFY_ERROR = "Email verification service error."
MSG_UNVERIFIED = "Invalid or unverified email address."
MSG_LOW_SCORE = "Email address failed the quality check."
MSG_SEND_FAILED = "Failed to send message. Please try again later."
MSG_SENT = "Message sent successfully!"
MSG_RATE_LIMITED = "Too many requests, please try again later."
MSG_INTERNAL = "Internal server error."


class Verifier(Protocol):
    def check(self, email: str) -> VerificationResult: ...


class Sender(Protocol):
    def send(self, mail: OutboundMail) -> None: ...


@dataclass
class Submission:
    name: str
    email: str
    message: str

    @classmethod
    def from_raw(cls, name: Any, email: Any, message: Any) -> "Submission":
        return cls(_clean(name), _clean(email), _clean(message))


@dataclass
class ContactResult:
    status_code: int
    success: bool
    message: str

    def envelope(self) -> dict:
        return {"success": self.success, "message": self.message}


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _fail(status_code: int, message: str) -> ContactResult:
    return ContactResult(status_code, False, message)


def validate_submission(sub: Submission) -> Optional[ContactResult]:
    """Local checks only; returns a rejection or None when the submission is usable."""
    if not sub.name or not sub.email or not sub.message:
        return _fail(400, MSG_REQUIRED)
    if not EMAIL_RE.match(sub.email):
        return _fail(400, MSG_BAD_FORMAT)
    if len(sub.message) > MAX_MESSAGE_LENGTH:
        return _fail(400, MSG_TOO_LONG)
    return None


def missing_config(cfg: Settings) -> list:
    missing = []
    if not cfg.receiver_email:
        missing.append("RECEIVER_EMAIL")
    if not cfg.mailboxlayer_api_key:
        missing.append("MAILBOXLAYER_API_KEY")
    if not cfg.email_user or not cfg.email_pass:
        missing.append("EMAIL_USER/EMAIL_PASS")
    return missing


def judge_verification(result: VerificationResult, min_score: float) -> Optional[ContactResult]:
    """
    Content-level decision on a verification answer.

    A failed SMTP mailbox probe alone does not reject: large providers refuse
    RCPT probes, so `smtp_check` is only logged. Format, MX and score decide.
    """
    if not result.format_valid or not result.mx_found:
        return _fail(400, MSG_UNVERIFIED)
    if result.score is not None and result.score < min_score:
        return _fail(400, MSG_LOW_SCORE)
    if not result.smtp_check:
        log.warning("[contact] SMTP mailbox check failed; accepting on format/MX/score")
    return None


def handle_contact(sub: Submission, cfg: Settings, verifier: Verifier, mailer: Sender) -> ContactResult:
    # Configuration errors take precedence over input errors
    missing = missing_config(cfg)
    if missing:
        log.error(f"[contact] server misconfigured, missing: {', '.join(missing)}")
        return _fail(500, MSG_CONFIG)

    rejected = validate_submission(sub)
    if rejected:
        return rejected

    try:
        result = verifier.check(sub.email)
    except VerificationUnavailable as exc:
        log.error(f"[contact] verification unavailable for {sub.email}: {exc}")
        return _fail(500, MSG_VERIFY_DOWN)
    except VerificationServiceError as exc:
        log.error(f"[contact] verification service error for {sub.email}: {exc}")
        return _fail(500, MSG_VERIFY_ERROR)

    log.info(
        f"[contact] verified {sub.email}: format={result.format_valid} "
        f"mx={result.mx_found} smtp={result.smtp_check} score={result.score}"
    )
    rejected = judge_verification(result, cfg.min_quality_score)
    if rejected:
        log.warning(f"[contact] rejected {sub.email}: {rejected.message}")
        return rejected

    mail = build_contact_mail(sub.name, sub.email, sub.message, cfg.email_user, cfg.receiver_email)
    try:
        mailer.send(mail)
    except MailDeliveryError as exc:
        log.error(f"[contact] dispatch failed for {sub.email}: {exc}")
        return _fail(500, MSG_SEND_FAILED)

    return ContactResult(200, True, MSG_SENT)

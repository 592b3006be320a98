"""
mailboxlayer address verification.

Looks up an address with the apilayer `check` endpoint and reports the
deliverability signals the contact handler decides on.

Documentation: https://mailboxlayer.com/documentation
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

log = logging.getLogger("uvicorn.error")


class VerificationUnavailable(Exception):
    """Raised when the verification service cannot be reached or answers garbage."""
    pass


class VerificationServiceError(Exception):
    """Raised when the service answers with an error object (bad key, quota, ...)."""

    def __init__(self, code: Any = None, type_: Optional[str] = None, info: Optional[str] = None):
        self.code = code
        self.type = type_
        self.info = info
        super().__init__(f"mailboxlayer error {code} ({type_}): {info}")


@dataclass
class VerificationResult:
    format_valid: bool
    mx_found: bool
    smtp_check: bool
    score: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def _to_score(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MailVerifier:
    """
    Client for the mailboxlayer check API.

    Usage:
        verifier = MailVerifier(api_key, "https://apilayer.net/api/check")
        result = verifier.check("ann@example.com")
    """

    def __init__(self, api_key: Optional[str], url: str, timeout: float = 10.0):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout

    def check(self, email: str) -> VerificationResult:
        """
        Verify one address.

        Raises:
            VerificationUnavailable: network error, timeout, HTTP error or non-JSON body
            VerificationServiceError: the response carries an `error` object
        """
        params = {
            "access_key": self.api_key,
            "email": email,
            "smtp": 1,
            "format": 1,
        }
        try:
            response = requests.get(self.url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            log.error(f"[verify] mailboxlayer timeout after {self.timeout}s")
            raise VerificationUnavailable("verification request timed out") from exc
        except requests.exceptions.RequestException as exc:
            log.error(f"[verify] mailboxlayer network error: {exc}")
            raise VerificationUnavailable(str(exc)) from exc

        if response.status_code >= 400:
            log.error(f"[verify] mailboxlayer returned HTTP {response.status_code}")
            raise VerificationUnavailable(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            log.error("[verify] mailboxlayer returned a non-JSON body")
            raise VerificationUnavailable("undecodable response") from exc
        if not isinstance(data, dict):
            raise VerificationUnavailable("unexpected response shape")

        error = data.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"info": str(error)}
            log.error(f"[verify] mailboxlayer error payload: {error}")
            raise VerificationServiceError(error.get("code"), error.get("type"), error.get("info"))

        return VerificationResult(
            format_valid=bool(data.get("format_valid")),
            mx_found=bool(data.get("mx_found")),
            smtp_check=bool(data.get("smtp_check")),
            score=_to_score(data.get("score")),
            raw=data,
        )

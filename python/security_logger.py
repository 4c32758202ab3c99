"""
Security event log for the Blacklist Registry

Events written to the dedicated ``security`` logger as one JSON object per line:
- ACCESS_DENIED: an entry id was missing or outside the caller's scope
- NO_COMPANY: a non-admin principal without a company reached the core
- UNKNOWN_PRINCIPAL: the caller's id matches no user
- VALIDATION_FAILED: the API rejected a request body or query

The caller only ever sees "not found" for ACCESS_DENIED; this log is what lets
an operator tell a typo from cross-tenant probing. Request id, caller and
client address are bound per request (contextvars, so concurrent requests
do not see each other's context).

SECURITY: every user-supplied value is sanitized and truncated before logging.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field as dataclass_field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from log_utils import sanitize_for_logging

SECURITY_LOG_FILE = "security.log"

INPUT_PREVIEW_LENGTH = 50
CONTEXT_VALUE_LENGTH = 200

_request_id: ContextVar[str] = ContextVar("security_request_id", default="")
_request_user: ContextVar[str] = ContextVar("security_request_user", default="")
_request_ip: ContextVar[str] = ContextVar("security_request_ip", default="")


def _clip(value: Any, max_length: int) -> str:
    text = sanitize_for_logging(str(value)) if value not in (None, "") else ""
    if len(text) > max_length:
        return text[:max_length] + "...(truncated)"
    return text


def _clean(value: Any) -> Any:
    """JSON-safe, sanitized copy of a context value."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, dict):
        return {_clip(key, 100) or "unknown": _clean(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_clean(item) for item in value]
    return _clip(value, CONTEXT_VALUE_LENGTH)


@dataclass
class SecurityEvent:
    """One line of the security log."""
    event_type: str
    severity: str
    field: str = ""
    error_code: str = ""
    sanitized_input: str = ""
    source: str = ""
    request_id: str = ""
    user_id: str = ""
    source_ip: str = ""
    context: Dict[str, Any] = dataclass_field(default_factory=dict)
    timestamp: str = dataclass_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


_SEVERITY_LEVELS = {
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class SecurityLogger:
    """Writes SecurityEvents to ``<log_dir>/security.log`` and, optionally, the console.

    Args:
        log_dir: Directory for security.log
        log_level: Minimum level recorded
        enable_console: Also echo events to stderr
        enable_file: Write security.log (tests turn this off)
    """

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: int = logging.WARNING,
        enable_console: bool = False,
        enable_file: bool = True
    ):
        self.log_dir = Path(log_dir)
        self.logger = logging.getLogger("security")
        self.logger.setLevel(log_level)
        self.logger.handlers.clear()

        formatter = logging.Formatter("%(asctime)s - SECURITY - %(levelname)s - %(message)s")
        handlers = []
        if enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.log_dir / SECURITY_LOG_FILE, encoding="utf-8"))
        if enable_console:
            handlers.append(logging.StreamHandler())
        for handler in handlers:
            handler.setLevel(log_level)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    # ------------------------------------------------------------------
    # Request context
    # ------------------------------------------------------------------

    def set_request_context(
        self,
        request_id: Optional[str] = None,
        user_id: str = "",
        source_ip: str = ""
    ) -> str:
        """Bind request id, caller and client address to events of the current request.

        Returns:
            The request id in use (generated when not supplied)
        """
        request_id = request_id or f"REQ-{uuid.uuid4().hex[:8]}"
        _request_id.set(request_id)
        _request_user.set(user_id)
        _request_ip.set(source_ip)
        return request_id

    def clear_request_context(self) -> None:
        _request_id.set("")
        _request_user.set("")
        _request_ip.set("")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def log_security_event(
        self,
        event_type: str,
        severity: str = "WARNING",
        field: str = "",
        error_code: str = "",
        input_value: str = "",
        source: str = "",
        user_id: Optional[str] = None,
        additional_context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Emit one event.

        Args:
            event_type: ACCESS_DENIED, NO_COMPANY, ...
            severity: WARNING, ERROR or CRITICAL
            field: Offending field, if any
            error_code: Machine-readable code
            input_value: Offending input (sanitized, first 50 characters kept)
            source: Operation or endpoint that raised the event
            user_id: Acting principal; the request's caller when omitted
            additional_context: Extra key/values (sanitized)
        """
        event = SecurityEvent(
            event_type=event_type,
            severity=severity,
            field=field,
            error_code=error_code,
            sanitized_input=_clip(input_value, INPUT_PREVIEW_LENGTH),
            source=source,
            request_id=_request_id.get(),
            user_id=str(user_id) if user_id is not None else _request_user.get(),
            source_ip=_request_ip.get(),
            context=_clean(additional_context or {}),
        )
        self.logger.log(_SEVERITY_LEVELS.get(severity, logging.WARNING), event.to_json())

    def log_validation_failure(
        self,
        field: str,
        error_code: str,
        input_value: str,
        source: str = "",
        additional_context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.log_security_event(
            event_type="VALIDATION_FAILED",
            field=field,
            error_code=error_code,
            input_value=input_value,
            source=source,
            additional_context=additional_context
        )

    def log_access_denied(
        self,
        user_id: int,
        resource_type: str,
        resource_id: Any,
        operation: str,
        source: str = ""
    ) -> None:
        """A lookup found nothing inside the caller's scope."""
        self.log_security_event(
            event_type="ACCESS_DENIED",
            error_code="NOT_FOUND_OR_DENIED",
            source=source,
            user_id=str(user_id),
            additional_context={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "operation": operation,
            }
        )

    def log_no_company(self, user_id: int, operation: str, source: str = "") -> None:
        self.log_security_event(
            event_type="NO_COMPANY",
            error_code="NO_COMPANY",
            source=source,
            user_id=str(user_id),
            additional_context={"operation": operation}
        )

    def log_unknown_principal(self, user_id: Any, source: str = "") -> None:
        self.log_security_event(
            event_type="UNKNOWN_PRINCIPAL",
            severity="ERROR",
            error_code="UNKNOWN_PRINCIPAL",
            input_value=str(user_id),
            source=source
        )


_security_logger: Optional[SecurityLogger] = None


def get_security_logger(
    log_dir: str = "logs",
    enable_console: bool = False,
    enable_file: bool = True
) -> SecurityLogger:
    """Process-wide SecurityLogger; the arguments only apply on first call."""
    global _security_logger
    if _security_logger is None:
        _security_logger = SecurityLogger(
            log_dir=log_dir,
            enable_console=enable_console,
            enable_file=enable_file
        )
    return _security_logger


def reset_security_logger() -> None:
    """Drop the process-wide instance (tests)."""
    global _security_logger
    _security_logger = None

"""Request, response and notification envelopes exchanged on the channel."""

from __future__ import annotations

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .status import (
    METRIC_REQUESTER_CLIENT_ID,
    RESPONSE_ERROR,
    RESPONSE_OK,
    VERB_ALIASES,
    Verb,
)


def utc_now_iso() -> str:
    """Return timezone-aware UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def split_topic(topic: Optional[str]) -> Tuple[str, ...]:
    """Split a topic into its non-empty path segments."""
    if not topic:
        return ()
    return tuple(part for part in str(topic).strip().split("/") if part.strip())


def normalize_verb(verb: object) -> Optional[Verb]:
    """Map a verb or one of its aliases to the canonical verb, or ``None``."""
    return VERB_ALIASES.get(str(verb or "").strip().upper())


@dataclass(frozen=True)
class OperationRequest:
    """Parsed inbound command, scoped to one message."""

    resources: Tuple[str, ...]
    verb: Optional[Verb]
    params: Mapping[str, Any] = field(default_factory=dict)
    requester_client_id: Optional[str] = None
    request_id: str = ""

    @classmethod
    def from_topic(
        cls,
        topic: Optional[str],
        verb: object,
        params: Optional[Mapping[str, Any]] = None,
        *,
        requester_client_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "OperationRequest":
        body = dict(params) if isinstance(params, Mapping) else {}
        requester = requester_client_id or body.get(METRIC_REQUESTER_CLIENT_ID)
        return cls(
            resources=split_topic(topic),
            verb=normalize_verb(verb),
            params=MappingProxyType(body),
            requester_client_id=str(requester) if requester else None,
            request_id=request_id or uuid.uuid4().hex,
        )

    @property
    def resource(self) -> Optional[str]:
        return self.resources[0] if self.resources else None

    @property
    def topic(self) -> str:
        return "/".join(self.resources)

    def option_params(self) -> Dict[str, Any]:
        """Parameters for option parsing, with the requester id filled in."""
        params = dict(self.params)
        if self.requester_client_id and not params.get(METRIC_REQUESTER_CLIENT_ID):
            params[METRIC_REQUESTER_CLIENT_ID] = self.requester_client_id
        return params


@dataclass
class OperationResponse:
    """Synchronous reply to one request."""

    code: int = RESPONSE_OK
    body: str = ""
    metrics: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)
    exception_message: Optional[str] = None
    exception_stack: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code == RESPONSE_OK

    def add_metric(self, name: str, value: Any) -> None:
        self.metrics[name] = value

    def set_exception(self, exc: BaseException) -> None:
        """Capture the exception message and formatted stack trace."""
        self.exception_message = str(exc) or exc.__class__.__name__
        self.exception_stack = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )

    def fail(self, code: int = RESPONSE_ERROR, body: str = "", exc: Optional[BaseException] = None) -> None:
        """Turn this reply into a failure, stamping a fresh timestamp."""
        self.code = int(code)
        self.body = body
        self.timestamp = utc_now_iso()
        if exc is not None:
            self.set_exception(exc)

    def to_dict(self) -> Dict[str, Any]:
        """Return the wire-format dictionary of this reply."""
        payload: Dict[str, Any] = {
            "code": self.code,
            "body": self.body,
            "metrics": dict(self.metrics),
            "timestamp": self.timestamp,
        }
        if self.exception_message is not None:
            payload["exception"] = {
                "message": self.exception_message,
                "stack": self.exception_stack or "",
            }
        return payload


@dataclass(frozen=True)
class Notification:
    """Asynchronous status message published by a job driver."""

    topic: str
    requester_client_id: Optional[str]
    payload: Mapping[str, Any]
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "requester_client_id": self.requester_client_id,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


__all__ = [
    "Notification",
    "OperationRequest",
    "OperationResponse",
    "normalize_verb",
    "split_topic",
    "utc_now_iso",
]

"""
Pydantic schemas for Sentry-compatible event ingestion.

A simplified version of the Sentry event schema: only `platform` is
required, unknown keys are ignored.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SentryStackFrameContainer(BaseModel):
    model_config = ConfigDict(extra="allow")

    frames: Optional[List[Dict[str, Any]]] = None


class SentryException(BaseModel):
    type: str
    value: str
    module: Optional[str] = None
    stacktrace: Optional[SentryStackFrameContainer] = None


class SentryExceptionList(BaseModel):
    values: Optional[List[SentryException]] = None


class SentrySdk(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    version: Optional[str] = None


class SentryEventPayload(BaseModel):
    """
    Request body of the store endpoint (and the event item of an envelope).

    Example:
        {
            "platform": "javascript",
            "level": "error",
            "message": "x is not defined",
            "exception": {"values": [{"type": "ReferenceError", "value": "x is not defined"}]}
        }
    """

    model_config = ConfigDict(extra="ignore")

    platform: str = Field(..., min_length=1, examples=["javascript", "python"])

    event_id: Optional[str] = None
    # ISO-8601 string or seconds since the epoch; pydantic accepts both
    timestamp: Optional[datetime] = None
    level: Optional[str] = Field(default=None, examples=["error", "warning", "fatal"])
    message: Optional[str] = None
    logger: Optional[str] = None
    transaction: Optional[str] = None
    server_name: Optional[str] = None
    release: Optional[str] = None
    environment: Optional[str] = None
    tags: Optional[Dict[str, Any]] = None
    modules: Optional[Dict[str, Any]] = None
    extra: Optional[Dict[str, Any]] = None
    fingerprint: Optional[List[str]] = None
    user: Optional[Dict[str, Any]] = None
    # Newer SDKs wrap breadcrumbs as {"values": [...]}
    breadcrumbs: Optional[Union[List[Dict[str, Any]], Dict[str, Any]]] = None
    contexts: Optional[Dict[str, Any]] = None
    request: Optional[Dict[str, Any]] = None
    sdk: Optional[SentrySdk] = None
    exception: Optional[SentryExceptionList] = None

    @property
    def first_exception(self) -> Optional[SentryException]:
        if self.exception and self.exception.values:
            return self.exception.values[0]
        return None

    def breadcrumb_list(self) -> Optional[List[Dict[str, Any]]]:
        if isinstance(self.breadcrumbs, dict):
            return list(self.breadcrumbs.get("values") or [])
        return self.breadcrumbs


class StoreResponse(BaseModel):
    """Sentry-compatible response: the stored event id."""

    id: str

"""
CDP wire format

Frame decoding for the duplex channel and the pydantic models used to decode
Runtime.evaluate payloads once, at the protocol boundary.

Outbound frames:  {"id": n, "method": "...", "params": {...}}
Inbound frames:   {"id": n, "result": {...}}          (response)
                  {"id": n, "error": {...}}           (protocol error response)
                  {"method": "...", "params": {...}}  (event, no id)
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from runtime_bridge.errors import FrameError

# ========== Methods ==========
RUNTIME_ENABLE = "Runtime.enable"
RUNTIME_EVALUATE = "Runtime.evaluate"
PAGE_ENABLE = "Page.enable"
PAGE_ADD_SCRIPT_ON_NEW_DOCUMENT = "Page.addScriptToEvaluateOnNewDocument"

# ========== Events ==========
PAGE_FRAME_NAVIGATED = "Page.frameNavigated"

# ========== Page-side helpers ==========
HELPER_MARKER = "__runtimeBridgeHelpers"

# Idempotent: re-running it on every (re)connect is safe because of the marker
HELPER_SCRIPT = """
(function() {
    if (window.%(marker)s) return;
    window.%(marker)s = true;

    window.getTaskIdFromUrl = function() {
        try {
            const url = window.location && window.location.href;
            if (!url) return null;
            const match = url.match(/\\/t\\/([a-zA-Z0-9]+)/);
            return match ? match[1] : null;
        } catch (e) {
            return null;
        }
    };
})();
""" % {"marker": HELPER_MARKER}

CURRENT_URL_EXPRESSION = "window.location.href"
TASK_ID_EXPRESSION = "(window.getTaskIdFromUrl && window.getTaskIdFromUrl()) || null"


class ResponseFrame(BaseModel):
    """Reply to a command we sent, matched by id."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., gt=0)
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        message = self.error.get("message") or "Unknown protocol error"
        code = self.error.get("code")
        return f"{message} (code {code})" if code is not None else str(message)


class EventFrame(BaseModel):
    """Unsolicited notification from the remote runtime."""

    model_config = ConfigDict(extra="ignore")

    method: str
    params: dict[str, Any] = Field(default_factory=dict)


def encode_command(message_id: int, method: str, params: dict[str, Any] | None = None) -> str:
    """Serialize an outbound command frame."""
    return json.dumps({"id": message_id, "method": method, "params": params or {}})


def parse_frame(raw: str | bytes) -> ResponseFrame | EventFrame:
    """
    Decode one inbound frame.

    Frames carrying an id are responses; frames with a method and no id are
    events.

    Raises:
        FrameError: If the frame is not valid JSON or fits neither shape
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise FrameError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise FrameError(f"Expected JSON object, got {type(data).__name__}")

    try:
        if data.get("id") is not None:
            return ResponseFrame.model_validate(data)
        if isinstance(data.get("method"), str):
            return EventFrame.model_validate(data)
    except ValidationError as e:
        raise FrameError(f"Unexpected frame shape: {e.error_count()} validation error(s)") from e

    raise FrameError("Frame has neither id nor method")


# ========== Runtime.evaluate payloads ==========


class RemoteObject(BaseModel):
    """Mirror of a CDP Runtime.RemoteObject (only the fields we read)."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    subtype: str | None = None
    value: Any = None
    unserializableValue: str | None = None
    description: str | None = None

    @property
    def has_value(self) -> bool:
        return "value" in self.model_fields_set


class ExceptionDetails(BaseModel):
    """Mirror of a CDP Runtime.ExceptionDetails."""

    model_config = ConfigDict(extra="allow")

    text: str | None = None
    exception: RemoteObject | None = None
    lineNumber: int | None = None
    columnNumber: int | None = None


class EvaluateOutcome(BaseModel):
    """
    Decoded Runtime.evaluate payload.

    Exactly one of `exception` / `remote` is meaningful: when the expression
    threw, `exception` is set; otherwise `remote` holds the returned object
    (possibly None when the runtime sent no result at all).
    """

    exception: ExceptionDetails | None = None
    remote: RemoteObject | None = None

    @property
    def threw(self) -> bool:
        return self.exception is not None


def _as_remote_object(node: Any) -> RemoteObject | None:
    if not isinstance(node, dict):
        return None
    try:
        return RemoteObject.model_validate(node)
    except ValidationError:
        return None


def decode_evaluate(payload: dict[str, Any] | None) -> EvaluateOutcome:
    """
    Decode the `result` member of a Runtime.evaluate response.

    Real responses are not consistent about nesting, so the remote object is
    looked up in a fixed order:
        1. the payload itself, when it carries `value`/`type` directly
        2. payload["result"]
    exceptionDetails is read from the payload first, then from payload["result"].
    """
    payload = payload or {}

    raw_exception = payload.get("exceptionDetails")
    nested = payload.get("result")
    if raw_exception is None and isinstance(nested, dict):
        raw_exception = nested.get("exceptionDetails")

    if isinstance(raw_exception, dict):
        try:
            details = ExceptionDetails.model_validate(raw_exception)
        except ValidationError:
            details = ExceptionDetails()
        return EvaluateOutcome(exception=details)

    remote = None
    if "value" in payload or "type" in payload:
        remote = _as_remote_object(payload)
    if remote is None or (not remote.has_value and isinstance(nested, dict)):
        remote = _as_remote_object(nested) or remote

    return EvaluateOutcome(remote=remote)

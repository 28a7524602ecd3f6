"""
Script Executor

Runs Runtime.evaluate on the attached target and classifies the raw reply
into a ScriptResult:

1. exceptionDetails present      -> failure with the exception text
2. otherwise                     -> success; value extracted by type
3. no reply (timeout, teardown)  -> failure with a transport message

A null/undefined evaluation result is a success with an empty value.
"""

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from runtime_bridge.cdp.protocol import (
    RUNTIME_EVALUATE,
    EvaluateOutcome,
    ExceptionDetails,
    RemoteObject,
    ResponseFrame,
    decode_evaluate,
)

if TYPE_CHECKING:
    from runtime_bridge.cdp.dispatcher import MessageDispatcher

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "Runtime not connected"
NO_RESPONSE_MESSAGE = "No response from runtime"
UNKNOWN_EXCEPTION_MESSAGE = "Unknown exception"


@dataclass
class ScriptResult:
    """Result of a script evaluation"""

    success: bool
    value: str | None = None
    exception_message: str | None = None

    @classmethod
    def ok(cls, value: str | None = None) -> "ScriptResult":
        return cls(success=True, value=value)

    @classmethod
    def failure(cls, message: str) -> "ScriptResult":
        return cls(success=False, exception_message=message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize result to dictionary."""
        return {
            "success": self.success,
            "value": self.value,
            "exception_message": self.exception_message,
        }


def describe_exception(details: ExceptionDetails) -> str:
    """Most specific human-readable text available for a thrown exception."""
    exception = details.exception
    if exception is not None:
        if exception.description:
            return exception.description
        if exception.has_value and exception.value is not None:
            if isinstance(exception.value, str):
                return exception.value
            return json.dumps(exception.value)
    if details.text:
        return details.text
    return UNKNOWN_EXCEPTION_MESSAGE


def extract_value(remote: RemoteObject | None) -> str | None:
    """
    Render a by-value RemoteObject as text.

    Strings pass through, objects/arrays become compact JSON, other scalars
    their JSON spelling. null and undefined give None.
    """
    if remote is None:
        return None
    if remote.has_value:
        value = remote.value
        if value is None:
            return None
        if isinstance(value, str):
            return value
        return json.dumps(value, separators=(",", ":"))
    if remote.unserializableValue is not None:
        # NaN, Infinity, -0, bigint literals
        return remote.unserializableValue
    return None


def classify_response(response: ResponseFrame | None) -> ScriptResult:
    """Turn a Runtime.evaluate reply into a ScriptResult."""
    if response is None:
        return ScriptResult.failure(NO_RESPONSE_MESSAGE)

    if response.is_error:
        return ScriptResult.failure(f"Protocol error: {response.error_message}")

    outcome: EvaluateOutcome = decode_evaluate(response.result)
    if outcome.threw:
        return ScriptResult.failure(describe_exception(outcome.exception))

    return ScriptResult.ok(extract_value(outcome.remote))


class ScriptExecutor:
    """
    Evaluates expressions through a MessageDispatcher.

    The executor does not know about connection state; the connection
    manager decides which dispatcher (if any) is live.
    """

    async def evaluate_on(self, dispatcher: "MessageDispatcher | None", expression: str) -> ScriptResult:
        """
        Evaluate `expression` by value on the given dispatcher.

        Args:
            dispatcher: Live dispatcher, or None when not connected
            expression: JavaScript source to evaluate

        Returns:
            ScriptResult (never raises for transport or script failures)
        """
        if dispatcher is None:
            return ScriptResult.failure(NOT_CONNECTED_MESSAGE)

        try:
            response = await dispatcher.send(
                RUNTIME_EVALUATE,
                {"expression": expression, "returnByValue": True},
            )
        except Exception as e:
            logger.warning(f"Script execution failed: {e}", exc_info=True)
            return ScriptResult.failure(str(e) or type(e).__name__)

        result = classify_response(response)
        if not result.success:
            logger.debug(f"Evaluation failed: {result.exception_message}")
        return result

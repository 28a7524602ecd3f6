"""
Tests for ScriptResult classification and the ScriptExecutor.
"""

import pytest

from runtime_bridge.cdp.protocol import ResponseFrame


def _response(result=None, error=None):
    return ResponseFrame(id=1, result=result, error=error)


class TestClassifyResponse:
    """classify_response() maps Runtime.evaluate replies to ScriptResult."""

    def test_string_value(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(_response({"result": {"type": "string", "value": "hi"}}))

        assert result.success is True
        assert result.value == "hi"
        assert result.exception_message is None

    def test_null_is_success_with_empty_value(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(
            _response({"result": {"type": "object", "subtype": "null", "value": None}})
        )

        assert result.success is True
        assert result.value is None

    def test_undefined_is_success_with_empty_value(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(_response({"result": {"type": "undefined"}}))

        assert result.success is True
        assert result.value is None

    def test_object_is_compact_json(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(
            _response({"result": {"type": "object", "value": {"a": [1, 2], "b": None}}})
        )

        assert result.value == '{"a":[1,2],"b":null}'

    @pytest.mark.parametrize(
        "value, expected",
        [(42, "42"), (1.5, "1.5"), (True, "true"), (False, "false")],
    )
    def test_scalars_render_as_json(self, value, expected):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(_response({"result": {"type": "number", "value": value}}))

        assert result.value == expected

    def test_unserializable_value_passes_through(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(
            _response({"result": {"type": "number", "unserializableValue": "NaN"}})
        )

        assert result.success is True
        assert result.value == "NaN"

    def test_thrown_exception_uses_description(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(
            _response(
                {
                    "result": {"type": "object", "subtype": "error"},
                    "exceptionDetails": {
                        "text": "Uncaught",
                        "exception": {
                            "type": "object",
                            "description": "ReferenceError: foo is not defined",
                        },
                    },
                }
            )
        )

        assert result.success is False
        assert result.exception_message == "ReferenceError: foo is not defined"

    def test_thrown_primitive_uses_value(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(
            _response(
                {"exceptionDetails": {"text": "Uncaught", "exception": {"type": "string", "value": "boom"}}}
            )
        )

        assert result.exception_message == "boom"

    def test_thrown_falls_back_to_text_then_unknown(self):
        from runtime_bridge.runtime.executor import UNKNOWN_EXCEPTION_MESSAGE, classify_response

        with_text = classify_response(_response({"exceptionDetails": {"text": "Uncaught"}}))
        bare = classify_response(_response({"exceptionDetails": {}}))

        assert with_text.exception_message == "Uncaught"
        assert bare.success is False
        assert bare.exception_message == UNKNOWN_EXCEPTION_MESSAGE

    def test_no_response_is_failure(self):
        from runtime_bridge.runtime.executor import NO_RESPONSE_MESSAGE, classify_response

        result = classify_response(None)

        assert result.success is False
        assert result.exception_message == NO_RESPONSE_MESSAGE

    def test_protocol_error_is_failure(self):
        from runtime_bridge.runtime.executor import classify_response

        result = classify_response(_response(error={"code": -32000, "message": "Cannot find context"}))

        assert result.success is False
        assert result.exception_message.startswith("Protocol error: Cannot find context")


class TestScriptResult:
    def test_to_dict(self):
        from runtime_bridge.runtime.executor import ScriptResult

        assert ScriptResult.failure("x").to_dict() == {
            "success": False,
            "value": None,
            "exception_message": "x",
        }


class TestScriptExecutor:
    """ScriptExecutor.evaluate_on() never raises."""

    @pytest.mark.asyncio
    async def test_without_dispatcher_fails_fast(self):
        from runtime_bridge.runtime.executor import NOT_CONNECTED_MESSAGE, ScriptExecutor

        result = await ScriptExecutor().evaluate_on(None, "1 + 1")

        assert result.success is False
        assert result.exception_message == NOT_CONNECTED_MESSAGE

    @pytest.mark.asyncio
    async def test_requests_return_by_value(self, fake_channel_cls):
        from runtime_bridge.cdp.dispatcher import MessageDispatcher
        from runtime_bridge.runtime.executor import ScriptExecutor

        channel = fake_channel_cls(
            responder=lambda c: {"result": {"result": {"type": "number", "value": 2}}}
        )
        dispatcher = MessageDispatcher(channel)
        dispatcher.start()

        result = await ScriptExecutor().evaluate_on(dispatcher, "1 + 1")

        assert result.value == "2"
        assert channel.sent[0]["method"] == "Runtime.evaluate"
        assert channel.sent[0]["params"] == {"expression": "1 + 1", "returnByValue": True}
        await dispatcher.close()

    @pytest.mark.asyncio
    async def test_dispatcher_fault_becomes_failure(self):
        from unittest.mock import AsyncMock, MagicMock

        from runtime_bridge.runtime.executor import ScriptExecutor

        dispatcher = MagicMock()
        dispatcher.send = AsyncMock(side_effect=RuntimeError("wire broke"))

        result = await ScriptExecutor().evaluate_on(dispatcher, "1")

        assert result.success is False
        assert result.exception_message == "wire broke"

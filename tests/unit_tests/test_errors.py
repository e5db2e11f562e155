"""Unit tests for errors.py error handlers."""

import json
from unittest.mock import MagicMock
from unittest.mock import patch

import pydantic
import pytest
from fastapi import Request

from sipedes_api.errors import handle_broad_exceptions
from sipedes_api.errors import handle_permohonan_errors
from sipedes_api.errors import handle_pydantic_validation_errors
from sipedes_api.errors import status_for
from sipedes_api.workflow.exceptions import ConcurrentModification
from sipedes_api.workflow.exceptions import FileTooLarge
from sipedes_api.workflow.exceptions import InvalidState
from sipedes_api.workflow.exceptions import InvalidTransition
from sipedes_api.workflow.exceptions import MissingReason
from sipedes_api.workflow.exceptions import MissingResultDocument
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import PermohonanError
from sipedes_api.workflow.exceptions import TrackingNumberExhausted
from sipedes_api.workflow.exceptions import UnsupportedType
from sipedes_api.workflow.exceptions import ValidationFailed


def mock_request():
    request = MagicMock(spec=Request)
    request.method = "POST"
    request.url.path = "/api/admin/permohonan/x/verify"
    return request


class TestHandleBroadExceptions:
    """Tests for handle_broad_exceptions middleware."""

    @patch("sipedes_api.errors.log_response_info")
    async def test_successful_request(self, mock_log):
        """Test middleware passes through successful requests."""
        mock_response = MagicMock()

        async def mock_call_next(request):
            return mock_response

        result = await handle_broad_exceptions(mock_request(), mock_call_next)

        assert result == mock_response
        mock_log.assert_not_called()

    @patch("sipedes_api.errors.log_response_info")
    async def test_exception_returns_500(self, mock_log):
        """Test middleware catches exceptions and returns 500 without leaking the message."""

        async def mock_call_next(request):
            raise RuntimeError("database password is hunter2")

        result = await handle_broad_exceptions(mock_request(), mock_call_next)

        assert result.status_code == 500
        body = json.loads(result.body)
        assert body == {"detail": "Internal server error", "error_type": "RuntimeError"}
        mock_log.assert_called_once()


class TestHandlePydanticValidationErrors:
    """Tests for handle_pydantic_validation_errors handler."""

    @patch("sipedes_api.errors.log_response_info")
    async def test_validation_error(self, mock_log):
        """Test handling pydantic validation errors."""

        class TestModel(pydantic.BaseModel):
            name: str
            value: int

        with pytest.raises(pydantic.ValidationError) as exc_info:
            TestModel(name=123, value="not_int")

        result = await handle_pydantic_validation_errors(mock_request(), exc_info.value)

        assert result.status_code == 422
        assert len(json.loads(result.body)["detail"]) == 2
        mock_log.assert_called_once()

    @patch("sipedes_api.errors.log_response_info")
    async def test_bytes_input_is_not_echoed(self, mock_log):
        """Raw bytes from uploads are summarised instead of dumped into the response."""

        class Upload(pydantic.BaseModel):
            size: int

        with pytest.raises(pydantic.ValidationError) as exc_info:
            Upload(size=b"\x00\x01")

        result = await handle_pydantic_validation_errors(mock_request(), exc_info.value)

        assert json.loads(result.body)["detail"][0]["input"] == "<2 bytes>"


class TestHandlePermohonanErrors:
    """Tests for handle_permohonan_errors handler."""

    @pytest.mark.parametrize(
        "exc,expected_status",
        [
            (ValidationFailed("bad input"), 400),
            (MissingReason("reason required"), 400),
            (MissingResultDocument("result required"), 400),
            (NotFound("no such permohonan"), 404),
            (InvalidTransition("SUBMITTED -> COMPLETED"), 409),
            (InvalidState("not SUBMITTED"), 409),
            (ConcurrentModification("stale"), 409),
            (FileTooLarge("too big"), 413),
            (UnsupportedType("gif"), 415),
            (TrackingNumberExhausted("9999"), 503),
            (PermohonanError("generic"), 400),
        ],
        ids=[
            "validation_failed",
            "missing_reason",
            "missing_result",
            "not_found",
            "invalid_transition",
            "invalid_state",
            "concurrent",
            "too_large",
            "unsupported",
            "exhausted",
            "base",
        ],
    )
    @patch("sipedes_api.errors.log_response_info")
    async def test_status_mapping(self, mock_log, exc, expected_status):
        """Each business-rule failure maps to its HTTP status and error_type."""
        result = await handle_permohonan_errors(mock_request(), exc)

        assert result.status_code == expected_status
        assert status_for(exc) == expected_status
        body = json.loads(result.body)
        assert body["detail"] == exc.message
        assert body["error_type"] == exc.error_type

    @patch("sipedes_api.errors.log_response_info")
    async def test_validation_errors_listed(self, mock_log):
        """Aggregated validation problems are returned under "errors"."""
        exc = ValidationFailed("incomplete", errors=["Missing required documents: Fotokopi KTP"])

        result = await handle_permohonan_errors(mock_request(), exc)

        assert json.loads(result.body)["errors"] == ["Missing required documents: Fotokopi KTP"]

    async def test_logged_with_context(self, captured_logs):
        """Context attached to the exception is logged as strings."""
        await handle_permohonan_errors(mock_request(), InvalidTransition("refused", status="REJECTED", version=3))

        warning = next(r for r in captured_logs if r["level"] == "WARNING")
        assert warning["extra"]["error_context"] == {"status": "REJECTED", "version": "3"}
        assert warning["extra"]["http_status"] == 409

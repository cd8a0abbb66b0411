"""Unit tests for error classification (src.errors).

Tests cover:
- infer_kind substring heuristics and their precedence
- classify_error with structured kinds, untagged exceptions and fallbacks
"""

from __future__ import annotations

import pytest

from src.errors import (
    USER_MESSAGES,
    ErrorKind,
    ExportError,
    PreconditionError,
    WebForgeError,
    classify_error,
    infer_kind,
)


class TestInferKind:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "message",
        [
            "Sandbox abc123 not found",
            "sandbox expired while writing file",
            "The sandbox was killed",
            "sandbox is not running anymore",
        ],
    )
    def test_expired_sandbox(self, message: str):
        assert infer_kind(message) is ErrorKind.SANDBOX_EXPIRED

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "message",
        ["Quota exceeded for model", "Rate limit reached", "HTTP 429", "RESOURCE_EXHAUSTED"],
    )
    def test_quota(self, message: str):
        assert infer_kind(message) is ErrorKind.QUOTA

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "message",
        ["HTTP 401", "403 Forbidden", "Unauthorized", "Invalid API key", "authentication failed"],
    )
    def test_auth(self, message: str):
        assert infer_kind(message) is ErrorKind.AUTH

    @pytest.mark.unit
    def test_timeout(self):
        assert infer_kind("Request timed out") is ErrorKind.TIMEOUT
        assert infer_kind("read timeout") is ErrorKind.TIMEOUT

    @pytest.mark.unit
    def test_not_found_without_sandbox_is_unknown(self):
        assert infer_kind("file not found") is ErrorKind.UNKNOWN

    @pytest.mark.unit
    def test_quota_wins_over_timeout(self):
        assert infer_kind("429 after timeout") is ErrorKind.QUOTA

    @pytest.mark.unit
    def test_unmatched(self):
        assert infer_kind("something odd happened") is ErrorKind.UNKNOWN


class TestClassifyError:
    @pytest.mark.unit
    def test_structured_kind_wins(self):
        exc = WebForgeError("opaque upstream failure", kind=ErrorKind.AUTH)
        assert classify_error(exc) == (ErrorKind.AUTH, USER_MESSAGES[ErrorKind.AUTH])

    @pytest.mark.unit
    def test_quota_message(self):
        kind, message = classify_error(RuntimeError("429 Too Many Requests: quota exceeded"))
        assert kind is ErrorKind.QUOTA
        assert message == "API quota exceeded. Please wait a moment and try again."

    @pytest.mark.unit
    def test_untagged_unknown_returns_raw_message(self):
        kind, message = classify_error(ValueError("disk is full"))
        assert kind is ErrorKind.UNKNOWN
        assert message == "disk is full"

    @pytest.mark.unit
    def test_transport_falls_back_to_substrings(self):
        exc = WebForgeError("sandbox abc was killed", kind=ErrorKind.TRANSPORT)
        kind, _ = classify_error(exc)
        assert kind is ErrorKind.SANDBOX_EXPIRED

    @pytest.mark.unit
    def test_transport_without_match_keeps_kind_and_raw_message(self):
        exc = WebForgeError("connection reset by peer", kind=ErrorKind.TRANSPORT)
        assert classify_error(exc) == (ErrorKind.TRANSPORT, "connection reset by peer")

    @pytest.mark.unit
    def test_precondition_keeps_raw_message(self):
        exc = PreconditionError("GOOGLE_GENERATIVE_AI_API_KEY environment variable is not set")
        kind, message = classify_error(exc)
        assert kind is ErrorKind.PRECONDITION
        assert "GOOGLE_GENERATIVE_AI_API_KEY" in message

    @pytest.mark.unit
    def test_empty_message_uses_class_name(self):
        assert classify_error(KeyError()) == (ErrorKind.UNKNOWN, "KeyError")

    @pytest.mark.unit
    def test_export_error_defaults_to_unknown(self):
        assert ExportError("boom").kind is ErrorKind.UNKNOWN

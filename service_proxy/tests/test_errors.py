"""
Unit tests for the error taxonomy and the uniform envelope.
"""

from shared.errors import (
    SlugNotFoundError,
    StoreUnavailableError,
    UpstreamTimeoutError,
    error_envelope,
)


class TestErrorEnvelope:
    """Test cases for error_envelope."""

    def test_domain_error_without_detail(self):
        body = error_envelope(UpstreamTimeoutError("timed out"))

        assert body.error == "Proxy Error"
        assert body.message == "timed out"
        assert body.detail is None
        assert body.timestamp.endswith("Z")

    def test_domain_error_with_detail(self):
        try:
            raise StoreUnavailableError(details={"key": "slug:x"})
        except StoreUnavailableError as e:
            body = error_envelope(e, include_detail=True)

        assert body.error == "Internal Server Error"
        assert body.detail["code"] == "STORE_UNAVAILABLE"
        assert body.detail["type"] == "StoreUnavailableError"
        assert body.detail["key"] == "slug:x"
        assert body.detail["traceback"]

    def test_unexpected_error_hides_message_by_default(self):
        body = error_envelope(RuntimeError("secret"))

        assert body.error == "Internal Server Error"
        assert body.message == "An unexpected error occurred"
        assert body.detail is None

    def test_unexpected_error_with_detail(self):
        body = error_envelope(KeyError("x"), include_detail=True)

        assert body.detail["type"] == "KeyError"
        assert body.message == "'x'"

    def test_status_codes(self):
        assert SlugNotFoundError("x").status_code == 404
        assert UpstreamTimeoutError().status_code == 500
        assert UpstreamTimeoutError().code == "UPSTREAM_TIMEOUT"

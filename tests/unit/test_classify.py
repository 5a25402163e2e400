"""
Unit tests for remote error classification.
"""

import pytest
from unittest.mock import Mock

import requests

from tracksync.core.exceptions import (
    NotFoundError,
    PermanentRemoteError,
    RemoteError,
    TransientRemoteError,
)
from tracksync.resilience.classify import (
    ErrorCategory,
    categorize_message,
    categorize_status,
    classify_error,
    error_for_status,
    is_transient,
)


class TestCategorizeStatus:
    """Tests for HTTP status categorisation."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_transient_statuses(self, status):
        assert categorize_status(status).is_transient

    @pytest.mark.parametrize("status,category", [
        (400, ErrorCategory.VALIDATION),
        (401, ErrorCategory.CONFIG),
        (403, ErrorCategory.PERMISSION),
        (404, ErrorCategory.NOT_FOUND),
        (409, ErrorCategory.VALIDATION),
    ])
    def test_permanent_statuses(self, status, category):
        assert categorize_status(status) == category
        assert not category.is_transient

    def test_unknown(self):
        assert categorize_status(418) == ErrorCategory.UNKNOWN
        assert categorize_status(None) == ErrorCategory.UNKNOWN


class TestErrorForStatus:
    """Tests for error_for_status."""

    def test_not_found(self):
        error = error_for_status(404, entity_id="PROJ-1")
        assert isinstance(error, NotFoundError)
        assert error.entity_id == "PROJ-1"

    def test_rate_limited(self):
        error = error_for_status(429, "slow down")
        assert isinstance(error, TransientRemoteError)
        assert error.status_code == 429
        assert "slow down" in str(error)

    def test_validation(self):
        error = error_for_status(400)
        assert isinstance(error, PermanentRemoteError)
        assert not error.transient


class TestClassifyError:
    """Tests for classify_error / is_transient."""

    def test_remote_error_by_status(self):
        assert is_transient(RemoteError("boom", status_code=503))
        assert not is_transient(RemoteError("boom", status_code=403))

    def test_remote_error_by_flag(self):
        assert is_transient(TransientRemoteError("timed out"))
        assert not is_transient(PermanentRemoteError("bad field"))

    def test_requests_exceptions(self):
        assert classify_error(requests.Timeout()) == ErrorCategory.TRANSIENT
        assert classify_error(requests.ConnectionError()) == ErrorCategory.NETWORK

    def test_builtin_exceptions(self):
        assert is_transient(TimeoutError())
        assert is_transient(ConnectionResetError())
        assert not is_transient(ValueError("bad input"))

    def test_http_error_uses_response_status(self):
        response = Mock(status_code=502)
        assert is_transient(requests.HTTPError(response=response))

    def test_message_fallback(self):
        assert categorize_message("Request timed out after 30s") == ErrorCategory.TRANSIENT
        assert categorize_message("Network is unreachable") == ErrorCategory.NETWORK
        assert categorize_message("Unauthorized") == ErrorCategory.CONFIG
        assert categorize_message("weird") == ErrorCategory.UNKNOWN

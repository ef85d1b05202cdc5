"""Unit tests for gateway exceptions and error handling."""

import asyncio

from mcp_postgres_gateway.exceptions import (
    AuthenticationError,
    ConnectionTimeoutError,
    DatabaseUnavailableError,
    ErrorCode,
    ErrorHandler,
    GatewayError,
    InvalidClientError,
    InvalidCredentialError,
    InvalidParamsError,
    InvalidStateError,
    MethodNotFoundError,
    OAuthRequestError,
    PoolExhaustedError,
    QueryError,
    RelationNotFoundError,
    UpstreamExchangeError,
    UpstreamProfileError,
)


class TestGatewayError:
    """Test GatewayError base class."""

    def test_gateway_error_creation(self):
        """Test creating GatewayError."""
        error = GatewayError("Test error", ErrorCode.INTERNAL_ERROR, {"detail": "test"})

        assert str(error) == "Test error"
        assert error.code == ErrorCode.INTERNAL_ERROR
        assert error.data == {"detail": "test"}
        assert error.status_code == 500

    def test_gateway_error_to_dict(self):
        """Test converting GatewayError to dict."""
        error = GatewayError("Test error", ErrorCode.INVALID_PARAMS, {"field": "sql"})
        error_dict = error.to_dict()

        assert error_dict == {"code": -32602, "message": "Test error", "data": {"field": "sql"}}

    def test_gateway_error_without_data(self):
        """Test GatewayError without additional data."""
        error_dict = GatewayError("Simple error").to_dict()

        assert error_dict["code"] == ErrorCode.INTERNAL_ERROR.value
        assert "data" not in error_dict

    def test_error_code_values(self):
        assert ErrorCode.PARSE_ERROR.value == -32700
        assert ErrorCode.INVALID_REQUEST.value == -32600
        assert ErrorCode.METHOD_NOT_FOUND.value == -32601
        assert ErrorCode.INVALID_PARAMS.value == -32602
        assert ErrorCode.INTERNAL_ERROR.value == -32603


class TestAuthErrors:
    """Test authentication and OAuth error types."""

    def test_invalid_credential_has_fixed_message(self):
        error = InvalidCredentialError()

        assert error.message == "Invalid or expired token"
        assert error.code == ErrorCode.AUTHENTICATION_ERROR
        assert error.status_code == 401

    def test_authentication_error(self):
        error = AuthenticationError("Invalid API key")

        assert error.to_dict()["code"] == ErrorCode.AUTHENTICATION_ERROR.value
        assert error.status_code == 401

    def test_oauth_errors_render_oauth_shape(self):
        assert InvalidClientError().to_oauth_dict() == {
            "error": "invalid_client",
            "error_description": "Invalid client_id",
        }
        assert InvalidStateError().to_oauth_dict()["error"] == "invalid_state"
        assert OAuthRequestError("x", error_name="unsupported_grant_type").error_name == (
            "unsupported_grant_type"
        )

    def test_invalid_client_status_override(self):
        assert InvalidClientError(status_code=401).status_code == 401
        assert InvalidClientError().status_code == 400

    def test_upstream_exchange_forwards_upstream_text(self):
        error = UpstreamExchangeError("bad_verification_code", "The code passed is incorrect")

        assert error.status_code == 400
        assert error.to_oauth_dict() == {
            "error": "bad_verification_code",
            "error_description": "The code passed is incorrect",
        }

    def test_upstream_profile_error(self):
        error = UpstreamProfileError(upstream_status=502)

        assert error.status_code == 500
        assert error.error_name == "server_error"
        assert error.upstream_status == 502


class TestDatabaseErrors:
    """Test database error types."""

    def test_relation_not_found(self):
        error = RelationNotFoundError("ghost")

        assert error.to_dict()["code"] == ErrorCode.INVALID_PARAMS.value
        assert error.message == "Table 'ghost' not found"
        assert error.status_code == 404

    def test_query_error_keeps_engine_text(self):
        error = QueryError('syntax error at or near "SELEC"', sqlstate="42601")

        assert error.message == 'syntax error at or near "SELEC"'
        assert error.sqlstate == "42601"
        assert error.code == ErrorCode.INTERNAL_ERROR
        assert error.status_code == 400

    def test_resource_acquisition_errors(self):
        for error in (PoolExhaustedError(), ConnectionTimeoutError()):
            assert error.code == ErrorCode.INTERNAL_ERROR
            assert error.status_code == 500

    def test_database_unavailable(self):
        error = DatabaseUnavailableError(data={"reason": "Connection refused"})

        assert error.status_code == 503
        assert error.error_name == "database_unavailable"
        assert error.to_dict() == {
            "code": -32603,
            "message": "Database unavailable",
            "data": {"reason": "Connection refused"},
        }

    def test_protocol_errors(self):
        assert InvalidParamsError().code == ErrorCode.INVALID_PARAMS
        assert MethodNotFoundError().code == ErrorCode.METHOD_NOT_FOUND


class TestErrorHandler:
    """Test ErrorHandler."""

    def test_handle_gateway_error(self):
        """Test handling GatewayError."""
        response = ErrorHandler.handle_error(RelationNotFoundError("users"), request_id=123)

        assert response == {
            "jsonrpc": "2.0",
            "error": {"code": -32602, "message": "Table 'users' not found"},
            "id": 123,
        }

    def test_handle_timeout_error(self):
        response = ErrorHandler.handle_error(asyncio.TimeoutError(), request_id="abc")

        assert response["error"]["code"] == ErrorCode.INTERNAL_ERROR.value
        assert response["error"]["message"] == "Operation timed out"
        assert response["id"] == "abc"

    def test_handle_generic_error(self):
        """Test handling generic exception."""
        response = ErrorHandler.handle_error(ValueError("Invalid value"), request_id=None)

        assert response["error"]["message"] == "Internal error"
        assert response["error"]["data"] == {
            "exception_type": "ValueError",
            "exception_message": "Invalid value",
        }
        assert response["id"] is None

    def test_create_error_context(self):
        """Test creating error context for logging."""
        error = QueryError("boom")
        context = ErrorHandler.create_error_context(
            error, method="tools/call", subject="octocat", tool_name="query"
        )

        assert context == {
            "error_type": "QueryError",
            "error_message": "boom",
            "method": "tools/call",
            "subject": "octocat",
            "tool_name": "query",
            "error_code": -32603,
        }

    def test_create_error_context_minimal(self):
        context = ErrorHandler.create_error_context(KeyError("x"))

        assert context["error_type"] == "KeyError"
        assert "method" not in context
        assert "error_code" not in context

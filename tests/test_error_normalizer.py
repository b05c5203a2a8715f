"""Tests for mapping exceptions onto the error envelope."""

from __future__ import annotations

import json
import logging
import re

import pytest
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from labsync.adapters.persistence.base import PersistenceError, PersistenceErrorKind
from labsync.adapters.rate_limit.base import RateLimitResult
from labsync.core.error_normalizer import (
    GENERIC_ERROR_MESSAGE,
    ErrorNormalizer,
    NormalizedError,
    generate_trace_id,
)
from labsync.core.errors import AppError, ErrorCode, NotFoundAppError, RateLimitExceededError
from labsync.schemas.projects import LabMemberCreate


def _email_validation_error() -> RequestValidationError:
    try:
        LabMemberCreate(email="not-an-email")
    except ValidationError as exc:
        errors = [{**err, "loc": ("body", *err["loc"])} for err in exc.errors()]
        return RequestValidationError(errors)
    raise AssertionError("expected validation to fail")


@pytest.fixture
def normalizer() -> ErrorNormalizer:
    return ErrorNormalizer(production=False)


@pytest.fixture
def production_normalizer() -> ErrorNormalizer:
    return ErrorNormalizer(production=True)


class TestTraceId:
    def test_format(self) -> None:
        assert re.fullmatch(r"\d{13}-[0-9a-z]{9}", generate_trace_id())

    def test_unique_per_call(self) -> None:
        assert len({generate_trace_id() for _ in range(100)}) == 100


class TestNormalizedErrorHeaders:
    def test_headers_default_to_independent_empty_dicts(self) -> None:
        first = NormalizedError(status_code=404, body={"success": False})
        second = NormalizedError(status_code=404, body={"success": False})

        first.headers["Retry-After"] = "5"

        assert second.headers == {}

    def test_error_without_headers_has_none(self, normalizer: ErrorNormalizer) -> None:
        result = normalizer.normalize(NotFoundAppError(message="Project not found"))

        assert result.headers == {}


class TestValidationErrors:
    def test_invalid_email_maps_to_validation_error(self, normalizer: ErrorNormalizer) -> None:
        result = normalizer.normalize(_email_validation_error())

        assert result.status_code == 422
        assert result.body["success"] is False
        error = result.body["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["field"] == "email"
        assert error["message"] == "Validation failed: Invalid email address"
        assert error["details"][0]["field"] == "email"

    def test_pydantic_error_outside_requests(self, normalizer: ErrorNormalizer) -> None:
        class Page(BaseModel):
            limit: int

        with pytest.raises(ValidationError) as exc_info:
            Page(limit="many")

        result = normalizer.normalize(exc_info.value)

        assert result.code == "VALIDATION_ERROR"
        assert result.body["error"]["field"] == "limit"

    def test_first_failure_wins(self, normalizer: ErrorNormalizer) -> None:
        exc = RequestValidationError(
            [
                {"loc": ("query", "page"), "msg": "must be >= 1", "type": "greater_than_equal"},
                {"loc": ("query", "limit"), "msg": "must be <= 100", "type": "less_than_equal"},
            ]
        )

        error = normalizer.normalize(exc).body["error"]

        assert error["field"] == "page"
        assert error["message"] == "Validation failed: must be >= 1"
        assert len(error["details"]) == 2

    def test_nested_field_path_is_dotted(self, normalizer: ErrorNormalizer) -> None:
        exc = RequestValidationError(
            [{"loc": ("body", "members", 0), "msg": "bad", "type": "string_type"}]
        )

        assert normalizer.normalize(exc).body["error"]["field"] == "members.0"

    def test_production_hides_validation_details(self, production_normalizer: ErrorNormalizer) -> None:
        error = production_normalizer.normalize(_email_validation_error()).body["error"]

        assert error["field"] == "email"
        assert "details" not in error


class TestPersistenceErrors:
    @pytest.mark.parametrize(
        ("kind", "code", "status", "message"),
        [
            (PersistenceErrorKind.UNIQUE_VIOLATION, "CONFLICT", 409, "A record with this value already exists"),
            (PersistenceErrorKind.RECORD_NOT_FOUND, "NOT_FOUND", 404, "Record not found"),
            (PersistenceErrorKind.FOREIGN_KEY_VIOLATION, "BAD_REQUEST", 400, "Foreign key constraint failed"),
            (PersistenceErrorKind.INVALID_DATA, "VALIDATION_ERROR", 422, "Invalid data format"),
        ],
    )
    def test_known_kinds(
        self,
        normalizer: ErrorNormalizer,
        kind: PersistenceErrorKind,
        code: str,
        status: int,
        message: str,
    ) -> None:
        result = normalizer.normalize(PersistenceError(kind=kind, message="raw driver text"))

        assert result.status_code == status
        assert result.code == code
        assert result.body["error"]["message"] == message

    def test_unknown_kind_is_database_error(self, normalizer: ErrorNormalizer) -> None:
        result = normalizer.normalize(
            PersistenceError(kind=PersistenceErrorKind.UNKNOWN, message="connection reset")
        )

        assert result.status_code == 500
        assert result.code == "DATABASE_ERROR"
        assert result.body["error"]["message"] == "Database operation failed"
        assert result.body["error"]["details"] == "connection reset"

    def test_production_hides_raw_backend_message(self, production_normalizer: ErrorNormalizer) -> None:
        result = production_normalizer.normalize(
            PersistenceError(kind=PersistenceErrorKind.UNKNOWN, message="connection reset")
        )

        assert "connection reset" not in json.dumps(result.body)


class TestAppErrors:
    def test_passes_code_message_and_details_through(self, normalizer: ErrorNormalizer) -> None:
        exc = AppError(
            code=ErrorCode.FORBIDDEN,
            message="Lab admins only",
            details={"lab": "riccc"},
            field="labId",
        )

        result = normalizer.normalize(exc)

        assert result.status_code == 403
        assert result.body["error"]["message"] == "Lab admins only"
        assert result.body["error"]["details"] == {"lab": "riccc"}
        assert result.body["error"]["field"] == "labId"

    def test_app_error_details_kept_in_production(self, production_normalizer: ErrorNormalizer) -> None:
        result = production_normalizer.normalize(NotFoundAppError(details={"id": "p-1"}))

        assert result.body["error"]["details"] == {"id": "p-1"}

    def test_rate_limit_error_carries_retry_after(self, normalizer: ErrorNormalizer) -> None:
        exc = RateLimitExceededError(
            result=RateLimitResult(allowed=False, limit=5, remaining=0, reset_at=1060, retry_after_seconds=37)
        )

        result = normalizer.normalize(exc)

        assert result.status_code == 429
        assert result.body["error"]["retryAfter"] == 37
        assert result.headers["Retry-After"] == "37"
        assert result.headers["X-RateLimit-Limit"] == "5"

    def test_http_exception_maps_by_status(self, normalizer: ErrorNormalizer) -> None:
        result = normalizer.normalize(StarletteHTTPException(status_code=404, detail="Not Found"))

        assert result.status_code == 404
        assert result.code == "NOT_FOUND"

    def test_method_not_allowed_stays_in_taxonomy(self, normalizer: ErrorNormalizer) -> None:
        result = normalizer.normalize(
            StarletteHTTPException(status_code=405, detail="Method Not Allowed", headers={"Allow": "GET"})
        )

        assert result.code == "BAD_REQUEST"
        assert result.headers == {"Allow": "GET"}


class TestUnexpectedErrors:
    def test_development_shows_message_and_trace(self, normalizer: ErrorNormalizer) -> None:
        try:
            raise RuntimeError("pool exhausted")
        except RuntimeError as exc:
            result = normalizer.normalize(exc)

        assert result.status_code == 500
        assert result.code == "INTERNAL_ERROR"
        assert result.body["error"]["message"] == "pool exhausted"
        assert "Traceback" in result.body["error"]["details"]

    def test_production_uses_generic_message(self, production_normalizer: ErrorNormalizer) -> None:
        try:
            raise RuntimeError("pool exhausted at db-3.internal")
        except RuntimeError as exc:
            result = production_normalizer.normalize(exc)

        body_text = json.dumps(result.body)
        assert result.body["error"]["message"] == GENERIC_ERROR_MESSAGE
        assert "db-3.internal" not in body_text
        assert "Traceback" not in body_text


class TestEnvelopeShape:
    def test_every_error_has_timestamp_and_trace_id(self, normalizer: ErrorNormalizer) -> None:
        error = normalizer.normalize(NotFoundAppError()).body["error"]

        assert error["timestamp"].endswith("+00:00")
        assert re.fullmatch(r"\d{13}-[0-9a-z]{9}", error["traceId"])

    def test_normalizing_twice_keeps_classification(self, normalizer: ErrorNormalizer) -> None:
        exc = PersistenceError(kind=PersistenceErrorKind.UNIQUE_VIOLATION, message="dup")

        first = normalizer.normalize(exc)
        second = normalizer.normalize(exc)

        assert (first.status_code, first.code) == (second.status_code, second.code)
        assert first.body["error"]["message"] == second.body["error"]["message"]
        assert first.trace_id != second.trace_id

    def test_to_response_returns_json(self, normalizer: ErrorNormalizer) -> None:
        response = normalizer.to_response(NotFoundAppError())

        assert response.status_code == 404
        assert json.loads(response.body)["error"]["code"] == "NOT_FOUND"


class TestLogging:
    def test_logs_exactly_once_with_trace_id(
        self, normalizer: ErrorNormalizer, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="labsync.core.error_normalizer"):
            result = normalizer.normalize(NotFoundAppError())

        records = [r for r in caplog.records if r.name == "labsync.core.error_normalizer"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert records[0].trace_id == result.trace_id
        assert records[0].error_code == "NOT_FOUND"

    def test_server_errors_log_at_error_with_exc_info(
        self, production_normalizer: ErrorNormalizer, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="labsync.core.error_normalizer"):
            production_normalizer.normalize(RuntimeError("boom"))

        records = [r for r in caplog.records if r.name == "labsync.core.error_normalizer"]
        assert len(records) == 1
        assert records[0].levelno == logging.ERROR
        assert records[0].exc_info is not None
        # The stack trace rides on the record, not the message
        assert records[0].error_message == GENERIC_ERROR_MESSAGE
        assert records[0].error_type == "RuntimeError"

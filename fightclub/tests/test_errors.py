"""Tests for fightclub.errors — status codes, error codes and context."""

import pytest

from fightclub.errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    NotFoundError,
    ProcessingError,
    RepositoryError,
    ValidationError,
)


@pytest.mark.parametrize(
    ("error_cls", "status_code", "code"),
    [
        (NotFoundError, 404, "NOT_FOUND"),
        (ValidationError, 400, "VALIDATION_FAILED"),
        (ForbiddenError, 403, "FORBIDDEN"),
        (ConflictError, 409, "CONFLICT"),
        (ProcessingError, 500, "PROCESSING_ERROR"),
        (RepositoryError, 500, "REPOSITORY_ERROR"),
    ],
)
def test_error_mapping(error_cls: type[DomainError], status_code: int, code: str) -> None:
    error = error_cls("boom")
    assert isinstance(error, DomainError)
    assert error.status_code == status_code
    assert error.code == code


class TestContext:
    def test_message_and_context_kept(self) -> None:
        error = NotFoundError("Evaluation not found", evaluation_id="e1")
        assert error.message == "Evaluation not found"
        assert error.context == {"evaluation_id": "e1"}

    def test_str_includes_context(self) -> None:
        error = NotFoundError("Evaluation not found", evaluation_id="e1")
        assert str(error) == "Evaluation not found (evaluation_id='e1')"

    def test_str_without_context(self) -> None:
        assert str(ValidationError("bad")) == "bad"

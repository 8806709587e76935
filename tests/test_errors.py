"""Tests for the error taxonomy and classifier."""

import json

import pytest
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from debt_ledger.errors import (
    ErrorCode,
    ErrorKind,
    LedgerError,
    LedgerStorageError,
    LedgerValidationError,
    TransactionNotFoundError,
    classify_error,
    is_retryable,
)


class _Strict(BaseModel):
    value: int


class TestClassifyError:
    """classify_error maps arbitrary exceptions onto the taxonomy."""

    def test_ledger_errors_pass_through(self):
        error = LedgerValidationError("bad", code=ErrorCode.NAME_REQUIRED)
        assert classify_error(error) is error

    @pytest.mark.parametrize("exc", [
        OSError("disk"),
        TimeoutError("slow"),
        json.JSONDecodeError("Expecting value", "", 0),
        UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"),
    ])
    def test_io_failures_are_retryable_storage_errors(self, exc):
        error = classify_error(exc)
        assert isinstance(error, LedgerStorageError)
        assert error.kind == ErrorKind.STORAGE_ERROR
        assert error.retryable is True
        assert error.original is exc

    def test_value_errors_are_validation_errors(self):
        error = classify_error(ValueError("nope"))
        assert error.kind == ErrorKind.VALIDATION_ERROR
        assert error.retryable is False

    def test_pydantic_errors_are_validation_errors(self):
        with pytest.raises(PydanticValidationError) as info:
            _Strict(value="x")
        assert classify_error(info.value).kind == ErrorKind.VALIDATION_ERROR

    def test_anything_else_is_unknown(self):
        error = classify_error(RuntimeError("boom"))
        assert type(error) is LedgerError
        assert error.kind == ErrorKind.UNKNOWN_ERROR
        assert error.message == "boom"
        assert not error.retryable

    def test_empty_message_gets_a_default(self):
        assert classify_error(RuntimeError()).message

    def test_is_retryable_honours_explicit_flag(self):
        assert is_retryable(OSError("x"))
        assert not is_retryable(LedgerStorageError("x", retryable=False))
        assert not is_retryable(KeyError("x"))


class TestLedgerErrors:
    """Tests for the exception classes themselves."""

    def test_not_found_carries_id_and_code(self):
        error = TransactionNotFoundError("abc")
        assert error.transaction_id == "abc"
        assert error.code == ErrorCode.NOT_FOUND
        assert error.kind == ErrorKind.VALIDATION_ERROR
        assert "abc" in str(error)

    def test_log_dict(self):
        original = OSError("disk")
        error = LedgerStorageError("save failed", code=ErrorCode.SAVE_FAILED, original=original)
        logged = error.to_log_dict()
        assert logged == {
            "error_kind": "STORAGE_ERROR",
            "error_code": "SAVE_FAILED",
            "error_message": "save failed",
            "retryable": True,
            "original_error": repr(original),
        }

    def test_repr_names_kind_and_code(self):
        text = repr(LedgerValidationError("x", code=ErrorCode.AMOUNT_INVALID))
        assert "VALIDATION_ERROR" in text
        assert "AMOUNT_INVALID" in text

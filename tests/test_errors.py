"""Unit tests for gridrepo.engine.errors — Error hierarchy & serialization."""

import json

import pytest
from bson import ObjectId

from gridrepo.engine.errors import (
    FileTooLargeError,
    GridRepoConfigError,
    GridRepoError,
    GridRepoValidationError,
    InvalidFilenameError,
    MissingFieldError,
    NotFoundError,
)


class TestGridRepoError:
    """Base error class tests."""

    def test_basic_creation(self):
        err = GridRepoError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "GridRepoError"
        assert err.record_type is None
        assert err.bucket is None

    def test_context_fields(self):
        err = GridRepoError("fail", record_type="Invoice", bucket="invoices", operation="get")
        assert err.record_type == "Invoice"
        assert err.bucket == "invoices"
        assert err.operation == "get"

    def test_to_dict(self):
        err = GridRepoError("fail", record_type="Invoice", bucket="invoices")
        d = err.to_dict()
        assert d["error_type"] == "GridRepoError"
        assert d["message"] == "fail"
        assert d["record_type"] == "Invoice"
        assert d["bucket"] == "invoices"
        assert "timestamp" in d

    def test_to_json(self):
        raw = GridRepoError("fail").to_json()
        parsed = json.loads(raw)
        assert parsed["error_type"] == "GridRepoError"
        assert parsed["message"] == "fail"

    def test_repr(self):
        r = repr(GridRepoError("fail", record_type="Invoice", bucket="invoices"))
        assert "GridRepoError" in r
        assert "Invoice" in r
        assert "invoices" in r

    def test_extra_context_serialized(self):
        d = GridRepoError("fail", custom_field="hello").to_dict()
        assert d["context"]["custom_field"] == "hello"
        assert "record_type" not in d["context"]


class TestSubclasses:

    @pytest.mark.parametrize("cls", [MissingFieldError, InvalidFilenameError, FileTooLargeError])
    def test_validation_errors_share_parent(self, cls):
        assert issubclass(cls, GridRepoValidationError)
        assert issubclass(cls, GridRepoError)

    def test_not_found_is_not_validation(self):
        assert not issubclass(NotFoundError, GridRepoValidationError)
        assert issubclass(GridRepoConfigError, GridRepoError)

    def test_missing_field(self):
        err = MissingFieldError("File name cannot be empty.", field_name="filename")
        assert err.field_name == "filename"
        assert err.to_dict()["field_name"] == "filename"

    def test_invalid_filename_message(self):
        err = InvalidFilenameError("bad/name.txt", bucket="documents")
        assert err.message == "File name 'bad/name.txt' is not of the desired format."
        assert err.filename == "bad/name.txt"
        assert err.to_dict()["filename"] == "bad/name.txt"

    def test_file_too_large_message(self):
        err = FileTooLargeError(5, size_bytes=6 * 1024 * 1024)
        assert err.message == "File size is too large, maximum allowed is 5 MB."
        d = err.to_dict()
        assert d["max_size_mb"] == 5
        assert d["size_bytes"] == 6 * 1024 * 1024

    def test_not_found_message(self):
        oid = ObjectId("65a1b2c3d4e5f6a7b8c9d0e1")
        err = NotFoundError(oid, operation="delete")
        assert err.file_id == "65a1b2c3d4e5f6a7b8c9d0e1"
        assert err.message == "File Id '65a1b2c3d4e5f6a7b8c9d0e1' was not found in the store"
        assert err.operation == "delete"

    def test_not_found_custom_message(self):
        err = NotFoundError("abc", message="gone")
        assert str(err) == "gone"
        assert json.loads(err.to_json())["file_id"] == "abc"

    def test_catch_by_base(self):
        with pytest.raises(GridRepoError):
            raise FileTooLargeError(1)

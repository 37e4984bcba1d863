"""Tests for the error envelope and the service error taxonomy.

Error responses look like:
{
    "status": "error",
    "error": {"code": "<stable_code>", "message": "<human_readable>", "details": <object|array|null>}
}
"""

import json

import pytest
from pydantic import ValidationError

from storefront.api.error_handling import error_response, service_error_response
from storefront.api.schemas import ErrorBody
from storefront.service.errors import (
    AccountConflictError,
    AuthenticationError,
    DuplicateAccountError,
    ForbiddenError,
    InvalidCredentialError,
    NotFoundError,
)


class TestErrorBody:
    def test_rejects_unknown_code(self):
        with pytest.raises(ValidationError):
            ErrorBody(code="teapot", message="nope")

    def test_details_optional(self):
        assert ErrorBody(code="not_found", message="missing").details is None


class TestTaxonomy:
    @pytest.mark.parametrize(
        "exc_class,status,code",
        [
            (DuplicateAccountError, 400, "duplicate_account"),
            (NotFoundError, 404, "not_found"),
            (InvalidCredentialError, 401, "invalid_credentials"),
            (AuthenticationError, 401, "unauthorized"),
            (ForbiddenError, 403, "forbidden"),
            (AccountConflictError, 409, "conflict"),
        ],
    )
    def test_status_and_code(self, exc_class, status, code):
        response = service_error_response(exc_class("boom"))
        body = json.loads(response.body)
        assert response.status_code == status
        assert body == {
            "status": "error",
            "error": {"code": code, "message": "boom", "details": None},
        }

    def test_details_carried(self):
        response = service_error_response(AccountConflictError("x", detail={"field": "email"}))
        assert json.loads(response.body)["error"]["details"] == {"field": "email"}


def test_status_fallback_code():
    body = json.loads(error_response(404, "Not Found").body)
    assert body["error"]["code"] == "not_found"

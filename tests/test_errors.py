import pydantic
import pytest

from signflow.core.errors import (
    AuthenticationError,
    AuthorizationError,
    BusinessRuleError,
    FieldError,
    GENERIC_INTERNAL_MESSAGE,
    InternalError,
    MalformedBodyError,
    NotFoundError,
    UpstreamTimeoutError,
    ValidationError,
    classify,
)


class Sample(pydantic.BaseModel):
    name: str = pydantic.Field(..., min_length=3)
    amount: float = pydantic.Field(..., gt=0)


def test_validation_error_joins_every_field_message():
    outcome = classify(ValidationError([FieldError("name", "too short"), FieldError("amount", "must be positive")]))

    assert outcome.status_code == 400
    assert outcome.body["error"] == "Validation Error"
    assert outcome.body["message"] == "name: too short; amount: must be positive"
    assert len(outcome.body["details"]) == 2


def test_pydantic_errors_are_classified_as_validation():
    with pytest.raises(pydantic.ValidationError) as exc_info:
        Sample.model_validate({"name": "ab", "amount": -1})

    outcome = classify(exc_info.value)

    assert outcome.status_code == 400
    assert [d["field"] for d in outcome.body["details"]] == ["name", "amount"]
    assert outcome.body["message"].count("; ") == 1


@pytest.mark.parametrize("error, status_code, title", [
    (MalformedBodyError(), 400, "Bad Request"),
    (AuthenticationError("Access token required"), 401, "Access Denied"),
    (AuthorizationError("Permission denied"), 403, "Forbidden"),
    (BusinessRuleError("Payment was already processed"), 400, "Business Rule Violation"),
    (UpstreamTimeoutError("slow"), 504, "Gateway Timeout"),
])
def test_typed_errors_map_to_their_status(error, status_code, title):
    outcome = classify(error)

    assert outcome.status_code == status_code
    assert outcome.body == {"error": title, "message": error.message}


def test_not_found_names_the_resource():
    outcome = classify(NotFoundError("Template"))

    assert outcome.status_code == 404
    assert outcome.body["message"] == "Template not found"


def test_unknown_exceptions_are_not_leaked():
    outcome = classify(RuntimeError("connection string postgres://admin:secret@db"))

    assert outcome.status_code == 500
    assert outcome.body["message"] == GENERIC_INTERNAL_MESSAGE
    assert "secret" not in str(outcome.body)


def test_internal_error_message_is_hidden():
    outcome = classify(InternalError("disk quota exceeded on /var/data"))

    assert outcome.status_code == 500
    assert outcome.body["message"] == GENERIC_INTERNAL_MESSAGE


def test_message_wording_does_not_change_the_status():
    # "not found" in a business rule message stays a 400
    outcome = classify(BusinessRuleError("Coupon not found or inactive"))

    assert outcome.status_code == 400

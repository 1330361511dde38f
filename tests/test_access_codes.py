import pytest

from app.core.errors import ValidationError
from app.services.access_codes import (
    CODE_ALPHABET,
    CODE_ALREADY_USED,
    CODE_LENGTH,
    INVALID_CODE,
    AccessCodeManager,
    generate_code,
)


def test_generated_codes_use_unambiguous_alphabet():
    for _ in range(200):
        code = generate_code()
        assert len(code) == CODE_LENGTH
        assert set(code) <= set(CODE_ALPHABET)
    assert not set("IO01") & set(CODE_ALPHABET)


def test_create_stores_unused_record(store):
    codes = AccessCodeManager(store)
    record = codes.create("buyer@example.com", "Acme")
    assert record["used"] is False
    assert record["companyName"] == "Acme"
    assert store.get(f"access:{record['code']}") == record
    assert store.list_range("access:all") == [record["code"]]


def test_create_requires_email(store):
    with pytest.raises(ValidationError):
        AccessCodeManager(store).create("  ")


def test_explicit_code_must_be_new(store):
    codes = AccessCodeManager(store)
    codes.create("a@example.com", code="abcd-1234-efgh-5678")
    with pytest.raises(ValidationError):
        codes.create("b@example.com", code="ABCD-1234-EFGH-5678")


def test_validate_is_case_insensitive_and_read_only(store):
    codes = AccessCodeManager(store)
    record = codes.create("buyer@example.com")
    result = codes.validate(record["code"].lower())
    assert result["valid"] is True
    assert codes.validate(record["code"])["valid"] is True


def test_validate_unknown_code(store):
    assert AccessCodeManager(store).validate("NOPE") == {"valid": False, "error": INVALID_CODE}


def test_consume_exactly_once(store):
    codes = AccessCodeManager(store)
    record = codes.create("buyer@example.com")

    assert codes.consume(record["code"]) is True
    assert codes.consume(record["code"]) is False

    result = codes.validate(record["code"])
    assert result["valid"] is False
    assert result["error"] == CODE_ALREADY_USED
    assert result["accessCode"]["usedAt"]


def test_consume_loses_when_another_request_holds_the_claim(store):
    codes = AccessCodeManager(store)
    record = codes.create("buyer@example.com")
    # Another request read used=false and claimed first
    store.set_if_absent(f"access:{record['code']}:claim", "other")

    assert codes.consume(record["code"]) is False
    assert store.get(f"access:{record['code']}")["used"] is False


def test_consume_unknown_code(store):
    assert AccessCodeManager(store).consume("MISSING") is False


def test_list_all_newest_first(store):
    codes = AccessCodeManager(store)
    first = codes.create("a@example.com")
    second = codes.create("b@example.com")
    store.set(f"access:{first['code']}", {**first, "createdAt": "2025-01-01T00:00:00Z"})
    store.set(f"access:{second['code']}", {**second, "createdAt": "2025-06-01T00:00:00Z"})

    listed = codes.list_all()
    assert [c["code"] for c in listed] == [second["code"], first["code"]]


def test_delete_removes_record_and_listing(store):
    codes = AccessCodeManager(store)
    record = codes.create("a@example.com")
    codes.consume(record["code"])

    assert codes.delete(record["code"]) is True
    assert store.get(f"access:{record['code']}") is None
    assert store.get(f"access:{record['code']}:claim") is None
    assert codes.list_all() == []
    assert codes.delete(record["code"]) is False

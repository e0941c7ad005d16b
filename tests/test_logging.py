import pytest

from authstate.logging import (
    _redact_pii,
    get_correlation_id,
    mask_sensitive,
    set_correlation_id,
)


def test_session_ids_keep_four_characters_each_side():
    assert mask_sensitive({"session_id": "abcd1234efgh5678"}) == {"session_id": "abcd********5678"}
    assert mask_sensitive({"sessionId": "short"}) == {"sessionId": "*****"}


def test_tokens_keep_six_and_four():
    masked = mask_sensitive({"token": "0123456789abcdef"})
    assert masked == {"token": "012345******cdef"}


def test_passwords_are_fully_masked_and_capped():
    assert mask_sensitive({"password": "hunter2"}) == {"password": "*******"}
    assert mask_sensitive({"pwd": "a-very-long-password"}) == {"pwd": "********"}


@pytest.mark.parametrize(
    "email,expected",
    [
        ("jo@example.com", "**@example.com"),
        ("anna@example.com", "a**a@example.com"),
        ("alexander@example.com", "al*****er@example.com"),
        ("no-at-sign", "**********"),
    ],
)
def test_emails_keep_domain(email, expected):
    assert mask_sensitive({"email": email}) == {"email": expected}


def test_phone_and_api_keys():
    masked = mask_sensitive({"phone": "13812345678", "api_key": "sk-live-abcdef123456"})
    assert masked == {"phone": "138****5678", "api_key": "sk-l************3456"}


def test_ids_are_never_masked():
    data = {"user_id": "u-123456789", "id": "abc", "userId": "u-2"}
    assert mask_sensitive(data) == data


def test_nested_structures_are_walked():
    data = {"ctx": {"token": "0123456789abcdef", "items": [{"password": "pw"}]}, "count": 3}

    assert mask_sensitive(data) == {
        "ctx": {"token": "012345******cdef", "items": [{"password": "**"}]},
        "count": 3,
    }


def test_processor_keeps_event_name():
    event = _redact_pii(None, "info", {"event": "session_resolved", "session_id": "abcd1234efgh5678"})

    assert event["event"] == "session_resolved"
    assert event["session_id"] == "abcd********5678"


def test_correlation_id_generated_and_reused():
    generated = set_correlation_id()
    assert get_correlation_id() == generated

    assert set_correlation_id("req-1") == "req-1"
    assert get_correlation_id() == "req-1"

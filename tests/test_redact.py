from __future__ import annotations

from parksafe._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "email": "alice@example.com",
        "password": "pw",
        "refresh_token": "refresh-1",
        "headers": {"Authorization": "Bearer token-1", "apikey": "anon"},
        "session": [{"access_token": "token-1", "expires_in": 3600}],
    }

    redacted = redact_for_log(payload)

    assert redacted["email"] == "alice@example.com"
    assert redacted["password"] == "<redacted>"
    assert redacted["refresh_token"] == "<redacted>"
    assert redacted["headers"] == {"Authorization": "<redacted>", "apikey": "<redacted>"}
    assert redacted["session"] == [{"access_token": "<redacted>", "expires_in": 3600}]


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"content": long_value}, max_string=10)
    assert redacted["content"].startswith("x" * 10)
    assert "<truncated>" in redacted["content"]


def test_redact_for_log_passes_scalars_and_params() -> None:
    params = [("select", "id,content"), ("limit", "50")]
    assert redact_for_log(params) == [["select", "id,content"], ["limit", "50"]]
    assert redact_for_log(None) is None
    assert redact_for_log(b"abc") == "<bytes:3b>"

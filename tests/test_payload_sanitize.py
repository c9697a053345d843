import json

from application.utils.payload import MASK_VALUE, TRUNCATED_SUFFIX, mask_email, sanitize_payload


def test_blank_payload_is_empty():
    assert sanitize_payload(None) == ""
    assert sanitize_payload("   \n") == ""


def test_sensitive_keys_are_masked_recursively():
    raw = json.dumps({
        "id": 1,
        "data": {"id": "123", "access_token": "APP_USR-1", "nested": [{"client_secret": "x"}]},
        "Authorization": "Bearer abc",
        "x-signature": "ts=1,v1=abc",
    })
    out = json.loads(sanitize_payload(raw))
    assert out["id"] == 1
    assert out["data"]["id"] == "123"
    assert out["data"]["access_token"] == MASK_VALUE
    assert out["data"]["nested"][0]["client_secret"] == MASK_VALUE
    assert out["Authorization"] == MASK_VALUE
    assert out["x-signature"] == MASK_VALUE


def test_email_is_partially_masked():
    out = json.loads(sanitize_payload(json.dumps({"payer": {"email": "maria@example.com"}})))
    assert out["payer"]["email"] == "ma***@example.com"
    assert mask_email("ab@x.io") == "***@x.io"


def test_json_output_is_pretty_printed():
    assert sanitize_payload('{"a":1}') == '{\n  "a": 1\n}'


def test_non_json_is_kept_and_truncated():
    assert sanitize_payload("topic=payment&id=1") == "topic=payment&id=1"
    out = sanitize_payload("x" * 50, max_chars=10)
    assert out == "x" * 10 + TRUNCATED_SUFFIX

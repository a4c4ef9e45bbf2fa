import pytest

from fal_backend.services.normalizer import normalize_response


@pytest.mark.parametrize(
    "body",
    ["", "<html>502 Bad Gateway</html>", "{not json", "{\"a\": 1", "upstream exploded", "[1, 2,"],
)
def test_invalid_bodies_fall_back_to_raw(body):
    result = normalize_response(200, body)
    assert result.data == {"raw": body}
    assert result.status_code == 200


def test_deeply_nested_body_does_not_raise():
    body = "[" * 100000 + "]" * 100000
    result = normalize_response(200, body)
    assert result.status_code == 200


def test_valid_json_is_parsed():
    result = normalize_response(201, '{"request_id": "abc", "status": "IN_QUEUE"}')
    assert result.ok
    assert result.data == {"request_id": "abc", "status": "IN_QUEUE"}


def test_error_message_prefers_upstream_fields():
    assert normalize_response(422, '{"detail": "prompt too long"}').error_message() == "prompt too long"
    assert normalize_response(500, '{"error": "boom", "message": "ignored"}').error_message() == "boom"
    assert normalize_response(400, '{"detail": [{"msg": "bad"}]}').error_message() == '[{"msg": "bad"}]'


def test_error_message_falls_back_to_raw_text():
    result = normalize_response(503, "service unavailable")
    assert not result.ok
    assert result.error_message() == "service unavailable"
    assert normalize_response(500, "").error_message() == "HTTP 500"

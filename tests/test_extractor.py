import pytest

from fal_backend.services.extractor import find_job_id, find_media_url, is_media_url, looks_in_progress


@pytest.mark.parametrize("value", [None, {}, [], "", 0, True, {"status": "COMPLETED"}])
def test_nothing_to_find(value):
    assert find_media_url(value) is None


def test_output_video_url():
    assert find_media_url({"output": {"video_url": "https://x/a.mp4"}}) == "https://x/a.mp4"


def test_priority_field_beats_earlier_generic_match():
    payload = {
        "logs": {"preview": "https://cdn.test/preview.webm"},
        "video": {"url": "https://cdn.test/final.mp4", "content_type": "video/mp4"},
    }
    assert find_media_url(payload) == "https://cdn.test/final.mp4"


def test_priority_order_between_known_fields():
    payload = {
        "data": {"url": "https://cdn.test/data.mp4"},
        "output": {"url": "https://cdn.test/output.mp4"},
    }
    assert find_media_url(payload) == "https://cdn.test/output.mp4"


def test_known_field_without_media_url_is_skipped():
    payload = {"url": "https://queue.test/requests/abc/status", "result": {"file": "https://cdn.test/clip.mov"}}
    assert find_media_url(payload) == "https://cdn.test/clip.mov"


def test_finds_url_at_any_depth():
    payload = {"a": [{"b": [1, 2.5, None, False, {"c": {"d": ["text", "https://cdn.test/deep.m3u8?sig=1"]}}]}]}
    assert find_media_url(payload) == "https://cdn.test/deep.m3u8?sig=1"


def test_very_deep_nesting():
    value = {"leaf": "https://cdn.test/bottom.mp4"}
    for _ in range(5000):
        value = {"next": [value]}
    assert find_media_url(value) == "https://cdn.test/bottom.mp4"


def test_sibling_order_is_stable():
    payload = {"first": "https://cdn.test/1.mp4", "second": "https://cdn.test/2.mp4"}
    assert find_media_url(payload) == "https://cdn.test/1.mp4"
    assert find_media_url(payload) == "https://cdn.test/1.mp4"


def test_self_referencing_structure_terminates():
    payload: dict = {"status": "IN_PROGRESS"}
    payload["self"] = payload
    assert find_media_url(payload) is None
    payload["files"] = ["https://cdn.test/loop.webm"]
    assert find_media_url(payload) == "https://cdn.test/loop.webm"


@pytest.mark.parametrize(
    "candidate,expected",
    [
        ("https://cdn.test/a.MP4", True),
        ("http://cdn.test/a.mkv?x=1&y=2", True),
        ("http://bad_host!!/clip.mp4", True),
        ("https://cdn.test/a.mp4.txt", False),
        ("ftp://cdn.test/a.mp4", False),
        ("https://cdn.test/a.png", False),
        ("see https://cdn.test/a.mp4", False),
    ],
)
def test_media_url_pattern(candidate, expected):
    assert is_media_url(candidate) is expected


def test_find_job_id_locations():
    assert find_job_id({"request_id": "req-1", "id": "other"}) == "req-1"
    assert find_job_id({"job_id": "job-9"}) == "job-9"
    assert find_job_id({"data": {"id": 42}}) == "42"
    assert find_job_id({"id": ""}) is None
    assert find_job_id({"id": True}) is None
    assert find_job_id({"raw": "accepted"}) is None
    assert find_job_id(None) is None


def test_looks_in_progress():
    assert looks_in_progress('{"status": "IN_PROGRESS"}')
    assert looks_in_progress('{"status": "Pending"}')
    assert looks_in_progress("job is processing")
    assert not looks_in_progress('{"status": "COMPLETED"}')
    assert not looks_in_progress("")

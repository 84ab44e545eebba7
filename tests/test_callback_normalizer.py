"""Callback normalization tests.

Tests focus on:
- Status classification into success / failure / in flight / unrecognized
- Strategy order: Kie envelope, Kie task record, Suno, flat fields
- Unrecognized payloads are reported, never treated as success
"""

import json

import pytest

from mediaforge.services.callbacks import (
    CallbackStatus,
    FlatFieldsStrategy,
    classify_status,
    normalize_callback,
)
from mediaforge.services.exceptions import ProviderCallbackError


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("success", CallbackStatus.SUCCESS),
        ("COMPLETED", CallbackStatus.SUCCESS),
        ("complete", CallbackStatus.SUCCESS),
        ("error", CallbackStatus.FAILURE),
        ("Failed", CallbackStatus.FAILURE),
        ("fail", CallbackStatus.FAILURE),
        ("queued", CallbackStatus.IN_FLIGHT),
        ("generating", CallbackStatus.IN_FLIGHT),
        ("wait", CallbackStatus.IN_FLIGHT),
        ("done-ish", CallbackStatus.UNRECOGNIZED),
        ("", CallbackStatus.UNRECOGNIZED),
        (None, CallbackStatus.UNRECOGNIZED),
        (1, CallbackStatus.UNRECOGNIZED),
    ],
)
def test_classify_status(raw, expected):
    assert classify_status(raw) == expected


def test_kie_envelope_success_with_info_urls():
    payload = {
        "code": 200,
        "msg": "Veo3 video generated successfully.",
        "data": {
            "taskId": "veo_task_abcdef123456",
            "info": {"resultUrls": ["https://tempfile.example.com/v.mp4"]},
        },
    }

    callback = normalize_callback(payload)

    assert callback.strategy == "kie_envelope"
    assert callback.status == CallbackStatus.SUCCESS
    assert callback.task_id == "veo_task_abcdef123456"
    assert callback.result_urls == ["https://tempfile.example.com/v.mp4"]


def test_kie_envelope_error_code_is_failure_with_message():
    payload = {
        "code": 400,
        "msg": "Your prompt was flagged by Website as violating content policies.",
        "data": {"taskId": "t-1"},
    }

    callback = normalize_callback(payload)

    assert callback.status == CallbackStatus.FAILURE
    assert callback.error_message.startswith("Your prompt was flagged")


def test_kie_envelope_success_without_urls_has_no_results():
    callback = normalize_callback({"code": 200, "msg": "ok", "data": {"taskId": "t-2"}})

    assert callback.status == CallbackStatus.SUCCESS
    assert callback.result_urls == []


def test_kie_envelope_snake_case_result_keys():
    video = {"taskId": "t-3", "video_url": "https://cdn.example.com/v.mp4"}
    image = {"taskId": "t-4", "image_url": "https://cdn.example.com/i.png"}

    video_callback = normalize_callback({"code": 200, "msg": "ok", "data": video})
    image_callback = normalize_callback({"code": 200, "msg": "ok", "data": image})

    assert video_callback.result_urls == ["https://cdn.example.com/v.mp4"]
    assert image_callback.result_urls == ["https://cdn.example.com/i.png"]


def test_task_record_parses_result_json():
    payload = {
        "code": 200,
        "msg": "success",
        "data": {
            "taskId": "rec-1",
            "state": "success",
            "resultJson": json.dumps({"resultUrls": ["https://cdn.example.com/a.png"]}),
        },
    }

    callback = normalize_callback(payload)

    assert callback.strategy == "kie_task_record"
    assert callback.status == CallbackStatus.SUCCESS
    assert callback.result_urls == ["https://cdn.example.com/a.png"]


@pytest.mark.parametrize(
    "state, expected",
    [
        ("waiting", CallbackStatus.IN_FLIGHT),
        ("queuing", CallbackStatus.IN_FLIGHT),
        ("generating", CallbackStatus.IN_FLIGHT),
        ("fail", CallbackStatus.FAILURE),
    ],
)
def test_task_record_states(state, expected):
    payload = {"data": {"taskId": "rec-2", "state": state, "failMsg": "internal error"}}

    assert normalize_callback(payload).status == expected


def test_task_record_with_broken_result_json_has_no_urls():
    payload = {"data": {"taskId": "rec-3", "state": "success", "resultJson": "{not json"}}

    callback = normalize_callback(payload)

    assert callback.status == CallbackStatus.SUCCESS
    assert callback.result_urls == []


def test_suno_complete_collects_track_urls():
    payload = {
        "code": 200,
        "msg": "All generated successfully.",
        "data": {
            "callbackType": "complete",
            "task_id": "suno-1",
            "data": [
                {"id": "a", "audio_url": "https://cdn.example.com/a.mp3"},
                {"id": "b", "audio_url": "https://cdn.example.com/b.mp3"},
            ],
        },
    }

    callback = normalize_callback(payload)

    assert callback.strategy == "suno"
    assert callback.status == CallbackStatus.SUCCESS
    assert callback.task_id == "suno-1"
    assert callback.result_urls == [
        "https://cdn.example.com/a.mp3",
        "https://cdn.example.com/b.mp3",
    ]


@pytest.mark.parametrize(
    "callback_type, expected",
    [
        ("text", CallbackStatus.IN_FLIGHT),
        ("first", CallbackStatus.IN_FLIGHT),
        ("error", CallbackStatus.FAILURE),
        ("mystery", CallbackStatus.UNRECOGNIZED),
    ],
)
def test_suno_callback_types(callback_type, expected):
    payload = {"code": 200, "data": {"callbackType": callback_type, "task_id": "s", "data": []}}

    assert normalize_callback(payload).status == expected


def test_suno_complete_with_error_code_is_failure():
    payload = {"code": 531, "msg": "Generation failed", "data": {"callbackType": "complete"}}

    callback = normalize_callback(payload)

    assert callback.status == CallbackStatus.FAILURE
    assert callback.error_message == "Generation failed"


def test_flat_fields_payload():
    payload = {
        "status": "completed",
        "task_id": "flat-1",
        "output": ["https://x.example.com/o.png"],
    }

    callback = normalize_callback(payload)

    assert callback.strategy == "flat"
    assert callback.status == CallbackStatus.SUCCESS
    assert callback.result_urls == ["https://x.example.com/o.png"]


def test_flat_unknown_status_is_unrecognized_not_success():
    callback = normalize_callback({"status": "finished?", "url": "https://x.example.com/o.png"})

    assert callback.status == CallbackStatus.UNRECOGNIZED


def test_non_http_urls_are_dropped():
    payload = {"status": "success", "resultUrls": ["ftp://x/y", "javascript:1"]}

    callback = normalize_callback(payload)

    assert callback.result_urls == []


def test_unrecognized_shape_raises():
    with pytest.raises(ProviderCallbackError, match="Unrecognized callback payload"):
        normalize_callback({"hello": "world"})


def test_non_object_payload_raises():
    with pytest.raises(ProviderCallbackError, match="JSON object"):
        normalize_callback(["success"])


def test_custom_strategy_list_is_respected():
    """An envelope payload is not recognized when only flat fields are allowed."""
    with pytest.raises(ProviderCallbackError):
        normalize_callback({"code": 200, "data": {}}, strategies=(FlatFieldsStrategy(),))

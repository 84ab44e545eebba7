"""Provider callback normalization.

Providers report completion in several payload shapes. Each shape is handled
by one strategy; strategies are tried in order and the first one that
recognizes the payload produces a NormalizedCallback. A payload no strategy
recognizes raises ProviderCallbackError.

Status strings are classified into three closed sets. Anything outside them
is UNRECOGNIZED and is never treated as success.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from mediaforge.services.exceptions import ProviderCallbackError

SUCCESS_STATUSES = frozenset({"success", "complete", "completed"})
FAILURE_STATUSES = frozenset({"error", "failed", "fail"})
IN_FLIGHT_STATUSES = frozenset({"pending", "queued", "processing", "working", "generating", "wait"})

KIE_OK = 200


class CallbackStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    IN_FLIGHT = "in_flight"
    UNRECOGNIZED = "unrecognized"


def classify_status(raw: Any) -> CallbackStatus:
    """Map a provider status string onto CallbackStatus (case-insensitive)."""
    if not isinstance(raw, str):
        return CallbackStatus.UNRECOGNIZED
    value = raw.strip().lower()
    if value in SUCCESS_STATUSES:
        return CallbackStatus.SUCCESS
    if value in FAILURE_STATUSES:
        return CallbackStatus.FAILURE
    if value in IN_FLIGHT_STATUSES:
        return CallbackStatus.IN_FLIGHT
    return CallbackStatus.UNRECOGNIZED


@dataclass
class NormalizedCallback:
    """Provider-independent view of a callback or status-poll payload."""

    status: CallbackStatus
    task_id: str | None = None
    result_urls: list[str] = field(default_factory=list)
    error_message: str | None = None
    raw_status: str | None = None
    strategy: str = ""


class CallbackStrategy(Protocol):
    name: str

    def extract(self, payload: dict) -> NormalizedCallback | None:
        """Return a normalized callback, or None if the shape is not this strategy's."""
        ...


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _first_str(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


def collect_urls(*candidates: Any) -> list[str]:
    """Flatten URL candidates (strings or lists of strings), keep http(s) only.

    Order is preserved and duplicates are dropped.
    """
    urls: list[str] = []
    for candidate in candidates:
        items = candidate if isinstance(candidate, list) else [candidate]
        for item in items:
            if isinstance(item, str) and item.startswith(("http://", "https://")):
                if item not in urls:
                    urls.append(item)
    return urls


class KieEnvelopeStrategy:
    """Kie.ai task callback: ``{"code": 200, "msg": "...", "data": {...}}``.

    ``code == 200`` means the task finished; result URLs live under
    ``data.info`` or ``data`` depending on the model family. Any other code is
    a failure described by ``msg``. Envelopes that wrap a task record
    (``data.state``) or a Suno callback (``data.callbackType``) are left to
    those strategies.
    """

    name = "kie_envelope"

    def extract(self, payload: dict) -> NormalizedCallback | None:
        code = payload.get("code")
        if not isinstance(code, int) or isinstance(code, bool):
            return None
        data = _as_dict(payload.get("data"))
        if "state" in data or "callbackType" in data:
            return None

        info = _as_dict(data.get("info"))
        response = _as_dict(data.get("response"))
        task_id = _first_str(data.get("taskId"), data.get("task_id"))
        msg = _first_str(payload.get("msg"), payload.get("message"))

        if code != KIE_OK:
            return NormalizedCallback(
                status=CallbackStatus.FAILURE,
                task_id=task_id,
                error_message=msg or f"Provider reported error code {code}",
                raw_status=str(code),
                strategy=self.name,
            )

        urls = collect_urls(
            info.get("resultUrls"),
            info.get("result_urls"),
            info.get("resultImageUrl"),
            response.get("resultUrls"),
            response.get("result_urls"),
            data.get("resultUrls"),
            data.get("result_urls"),
            data.get("videoUrl"),
            data.get("video_url"),
            data.get("imageUrl"),
            data.get("image_url"),
            data.get("audioUrl"),
            data.get("audio_url"),
            data.get("url"),
        )
        return NormalizedCallback(
            status=CallbackStatus.SUCCESS,
            task_id=task_id,
            result_urls=urls,
            error_message=None if urls else msg,
            raw_status=str(code),
            strategy=self.name,
        )


class KieTaskRecordStrategy:
    """Kie.ai task record (callback or recordInfo poll).

    Shape: ``{"data": {"taskId", "state", "resultJson", "failMsg"}}`` where
    ``resultJson`` is a JSON-encoded string holding ``resultUrls``.
    """

    name = "kie_task_record"

    STATE_ALIASES = {"waiting": "wait", "queuing": "queued"}

    def extract(self, payload: dict) -> NormalizedCallback | None:
        data = _as_dict(payload.get("data"))
        state = data.get("state")
        if not isinstance(state, str):
            return None

        raw_status = self.STATE_ALIASES.get(state.lower(), state)
        result = data.get("resultJson")
        if isinstance(result, str) and result:
            try:
                result = json.loads(result)
            except ValueError:
                result = {}
        result = _as_dict(result)

        return NormalizedCallback(
            status=classify_status(raw_status),
            task_id=_first_str(data.get("taskId"), data.get("task_id")),
            result_urls=collect_urls(
                result.get("resultUrls"), result.get("result_urls"), result.get("resultUrl")
            ),
            error_message=_first_str(data.get("failMsg"), data.get("errorMessage")),
            raw_status=state,
            strategy=self.name,
        )


class SunoStrategy:
    """Suno music callback: ``data.callbackType`` with tracks in ``data.data``.

    ``callbackType`` is ``text`` or ``first`` while tracks are still being
    produced, ``complete`` when all are ready and ``error`` on failure.
    """

    name = "suno"

    CALLBACK_TYPES = {
        "text": CallbackStatus.IN_FLIGHT,
        "first": CallbackStatus.IN_FLIGHT,
        "complete": CallbackStatus.SUCCESS,
        "error": CallbackStatus.FAILURE,
    }

    def extract(self, payload: dict) -> NormalizedCallback | None:
        data = _as_dict(payload.get("data"))
        callback_type = data.get("callbackType")
        if not isinstance(callback_type, str):
            return None

        tracks = data.get("data") if isinstance(data.get("data"), list) else []
        urls = collect_urls(
            *[
                _first_str(
                    _as_dict(track).get("audio_url"),
                    _as_dict(track).get("audioUrl"),
                    _as_dict(track).get("stream_audio_url"),
                    _as_dict(track).get("streamAudioUrl"),
                )
                for track in tracks
            ]
        )
        status = self.CALLBACK_TYPES.get(callback_type.lower(), CallbackStatus.UNRECOGNIZED)
        code = payload.get("code")
        if status == CallbackStatus.SUCCESS and isinstance(code, int) and code != KIE_OK:
            status = CallbackStatus.FAILURE

        return NormalizedCallback(
            status=status,
            task_id=_first_str(data.get("task_id"), data.get("taskId")),
            result_urls=urls,
            error_message=(
                _first_str(payload.get("msg"), data.get("errorMessage"))
                if status == CallbackStatus.FAILURE
                else None
            ),
            raw_status=callback_type,
            strategy=self.name,
        )


class FlatFieldsStrategy:
    """Flat payload with a top-level ``status`` (or ``state``) field."""

    name = "flat"

    def extract(self, payload: dict) -> NormalizedCallback | None:
        raw_status = payload.get("status", payload.get("state"))
        if not isinstance(raw_status, str):
            return None

        return NormalizedCallback(
            status=classify_status(raw_status),
            task_id=_first_str(payload.get("taskId"), payload.get("task_id"), payload.get("id")),
            result_urls=collect_urls(
                payload.get("resultUrls"),
                payload.get("result_urls"),
                payload.get("output"),
                payload.get("videoUrl"),
                payload.get("imageUrl"),
                payload.get("audioUrl"),
                payload.get("audio_url"),
                payload.get("url"),
            ),
            error_message=_first_str(
                payload.get("error"), payload.get("errorMessage"), payload.get("message")
            ),
            raw_status=raw_status,
            strategy=self.name,
        )


DEFAULT_STRATEGIES: tuple[CallbackStrategy, ...] = (
    KieEnvelopeStrategy(),
    KieTaskRecordStrategy(),
    SunoStrategy(),
    FlatFieldsStrategy(),
)


def normalize_callback(
    payload: Any, strategies: tuple[CallbackStrategy, ...] = DEFAULT_STRATEGIES
) -> NormalizedCallback:
    """Normalize a provider payload using the first strategy that recognizes it.

    Raises:
        ProviderCallbackError: If the payload is not an object or no strategy
            recognizes its shape
    """
    if not isinstance(payload, dict):
        raise ProviderCallbackError(
            f"Callback payload must be a JSON object, got {type(payload).__name__}"
        )

    for strategy in strategies:
        normalized = strategy.extract(payload)
        if normalized is not None:
            return normalized

    raise ProviderCallbackError(
        f"Unrecognized callback payload shape (keys: {', '.join(sorted(payload)) or 'none'})"
    )

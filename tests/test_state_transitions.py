"""State transition tests for GenerationJob.

Tests focus on the job lifecycle state machine:
- pending -> processing -> completed | failed
- Terminal states are final
- Invalid transitions are rejected with clear error messages
"""

from uuid import uuid4

import pytest

from mediaforge.models.generation_job import (
    GenerationJob,
    InvalidStateTransition,
    JobKind,
    JobStatus,
)


def make_job(**overrides) -> GenerationJob:
    fields = dict(
        user_id=uuid4(),
        kind=JobKind.VIDEO,
        model="wan-2.5",
        prompt="a lighthouse at dusk",
        credits_reserved=125,
        status=JobStatus.PENDING,
        attempts=0,
    )
    fields.update(overrides)
    return GenerationJob(**fields)


def test_valid_state_transitions():
    """Happy path: pending -> processing -> completed."""
    job = make_job()

    job.mark_processing()
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 1

    job.mark_completed(["https://cdn.example.com/a.mp4", "https://cdn.example.com/b.mp4"])
    assert job.status == JobStatus.COMPLETED
    assert job.result_url == "https://cdn.example.com/a.mp4"
    assert job.result_urls == ["https://cdn.example.com/a.mp4", "https://cdn.example.com/b.mp4"]
    assert job.completed_at is not None
    assert job.is_terminal
    assert job.succeeded


def test_pending_job_can_fail_directly():
    job = make_job()

    job.mark_failed("AI service authentication failed")

    assert job.status == JobStatus.FAILED
    assert job.error_message == "AI service authentication failed"
    assert job.completed_at is not None
    assert not job.succeeded


def test_mark_processing_requires_pending():
    job = make_job(status=JobStatus.PROCESSING)

    with pytest.raises(InvalidStateTransition, match="pending"):
        job.mark_processing()


@pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED])
def test_terminal_states_are_final(terminal):
    job = make_job(status=terminal)

    with pytest.raises(InvalidStateTransition):
        job.mark_completed(["https://cdn.example.com/late.mp4"])
    with pytest.raises(InvalidStateTransition):
        job.mark_failed("late failure")
    with pytest.raises(InvalidStateTransition):
        job.mark_processing()

    assert job.status == terminal


def test_completion_requires_a_result():
    job = make_job(status=JobStatus.PROCESSING)

    with pytest.raises(ValueError, match="result URL"):
        job.mark_completed([])
    assert job.status == JobStatus.PROCESSING


def test_failure_message_is_truncated():
    job = make_job(status=JobStatus.PROCESSING)

    job.mark_failed("x" * 5000)

    assert len(job.error_message) == 1000

"""
Job state machine.

Every legal status change is listed once in ``TRANSITIONS`` together with the
actor allowed to perform it. Leasing, completion and the missed-deadline
reaper all validate against this table. Re-creating a job (upsert) resets it
to ``queued`` from any state and is not an edge here.
"""

from enum import Enum
from typing import Dict, FrozenSet, Tuple, Union

from daystart_jobs.errors import InvalidTransitionError
from daystart_jobs.models import JobStatus


class TransitionActor(str, Enum):
    """Who is allowed to drive a transition."""

    LEASE = "lease"
    COMPLETE = "complete"
    REAP = "reap"


_Q = JobStatus.QUEUED
_SP = JobStatus.SCRIPT_PROCESSING
_SR = JobStatus.SCRIPT_READY
_AP = JobStatus.AUDIO_PROCESSING
_R = JobStatus.READY
_F = JobStatus.FAILED
_FM = JobStatus.FAILED_MISSED

TRANSITIONS: Dict[Tuple[JobStatus, JobStatus], FrozenSet[TransitionActor]] = {
    # lease claims; a stale in-flight row is re-claimed in place
    (_Q, _SP): frozenset({TransitionActor.LEASE}),
    (_SP, _SP): frozenset({TransitionActor.LEASE}),
    (_SR, _AP): frozenset({TransitionActor.LEASE}),
    (_AP, _AP): frozenset({TransitionActor.LEASE}),
    # worker completions
    (_SP, _SR): frozenset({TransitionActor.COMPLETE}),
    (_AP, _R): frozenset({TransitionActor.COMPLETE}),
    (_SP, _F): frozenset({TransitionActor.COMPLETE}),
    (_AP, _F): frozenset({TransitionActor.COMPLETE}),
    (_SP, _FM): frozenset({TransitionActor.COMPLETE, TransitionActor.REAP}),
    (_AP, _FM): frozenset({TransitionActor.COMPLETE, TransitionActor.REAP}),
    # deadline sweeps on jobs nobody is working on
    (_Q, _FM): frozenset({TransitionActor.REAP}),
    (_SR, _FM): frozenset({TransitionActor.REAP}),
}

TERMINAL_STATUSES = frozenset({_R, _F, _FM})

LEASE_TARGETS: Dict[JobStatus, JobStatus] = {
    current: target
    for (current, target), actors in TRANSITIONS.items()
    if TransitionActor.LEASE in actors and current != target
}

COMPLETION_TARGETS = frozenset(
    target
    for (_, target), actors in TRANSITIONS.items()
    if TransitionActor.COMPLETE in actors
)

REAPABLE_STATUSES = frozenset(
    current
    for (current, _), actors in TRANSITIONS.items()
    if TransitionActor.REAP in actors
)

FAILED_STATUSES = frozenset({_F, _FM})


def _coerce(status: Union[JobStatus, str]) -> JobStatus:
    try:
        return JobStatus(status)
    except ValueError as e:
        raise InvalidTransitionError(
            str(status), str(status), f"Unknown job status: {status}"
        ) from e


def validate_transition(
    current: Union[JobStatus, str],
    target: Union[JobStatus, str],
    actor: TransitionActor,
) -> None:
    """Raise InvalidTransitionError unless ``actor`` may move ``current`` to ``target``."""
    current = _coerce(current)
    target = _coerce(target)
    actors = TRANSITIONS.get((current, target), frozenset())
    if actor not in actors:
        raise InvalidTransitionError(
            current.value,
            target.value,
            f"Invalid status transition for {actor.value}: "
            f"{current.value} -> {target.value}",
        )


def leased_status_for(target_status: Union[JobStatus, str]) -> JobStatus:
    """Map a leasable status to the in-flight status a claim moves it to."""
    status = _coerce(target_status)
    if status not in LEASE_TARGETS:
        raise InvalidTransitionError(
            status.value,
            status.value,
            f"Invalid status for leasing: {status.value}",
        )
    return LEASE_TARGETS[status]


def validate_completion_target(new_status: Union[JobStatus, str]) -> JobStatus:
    status = _coerce(new_status)
    if status not in COMPLETION_TARGETS:
        raise InvalidTransitionError(
            status.value, status.value, f"Invalid target status: {status.value}"
        )
    return status


def is_terminal(status: Union[JobStatus, str]) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def client_status(status: Union[JobStatus, str]) -> str:
    """Collapse the pipeline into the coarse states the client understands."""
    status = _coerce(status)
    if not is_terminal(status):
        return "processing"
    return "ready" if status == _R else "failed"


class PipelineStage(str, Enum):
    """The two halves of the DayStart pipeline."""

    SCRIPT = "script"
    AUDIO = "audio"

    @property
    def lease_status(self) -> JobStatus:
        return _STAGE_LEASE_STATUS[self]

    @property
    def success_status(self) -> JobStatus:
        return _STAGE_SUCCESS_STATUS[self]


_STAGE_LEASE_STATUS = {
    PipelineStage.SCRIPT: _Q,
    PipelineStage.AUDIO: _SR,
}

_STAGE_SUCCESS_STATUS = {
    PipelineStage.SCRIPT: _SR,
    PipelineStage.AUDIO: _R,
}

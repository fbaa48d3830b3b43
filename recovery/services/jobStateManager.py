"""
Job State Manager
=================

Finite state machine governing all valid job status transitions. Every
status change MUST go through ``validate_transition`` before being persisted.

State machine overview::

    pending --> assigned --> in-progress --> recovered

    pending / assigned / in-progress --> cancelled

``recovered`` and ``cancelled`` are terminal. Skipping ``assigned`` is not
allowed. Payment status is a separate axis and is never checked here.
"""

from __future__ import annotations

from dataclasses import dataclass

from recovery.models.job import JobStatus


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {
        JobStatus.ASSIGNED,
        JobStatus.CANCELLED,
    },
    JobStatus.ASSIGNED: {
        JobStatus.IN_PROGRESS,
        JobStatus.CANCELLED,
    },
    JobStatus.IN_PROGRESS: {
        JobStatus.RECOVERED,
        JobStatus.CANCELLED,
    },
    # Terminal states
    JobStatus.RECOVERED: set(),
    JobStatus.CANCELLED: set(),
}

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    s for s, targets in VALID_TRANSITIONS.items() if not targets
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(current: JobStatus, target: JobStatus) -> TransitionResult:
    """Validate whether a job can move from ``current`` to ``target``.

    Args:
        current: The job's current status.
        target: The desired new status.

    Returns:
        TransitionResult with ``allowed=True`` if legal, or ``allowed=False``
        with a human-readable ``reason``.
    """
    if current == target:
        return TransitionResult(
            allowed=False,
            reason=f"Job is already in '{current.value}' status.",
        )

    if current in TERMINAL_STATUSES:
        return TransitionResult(
            allowed=False,
            reason=f"Job is in terminal status '{current.value}' and cannot change.",
        )

    allowed_targets = VALID_TRANSITIONS.get(current, set())
    if target not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Transition from '{current.value}' to '{target.value}' is not "
                f"allowed. Valid targets: "
                f"{', '.join(sorted(s.value for s in allowed_targets))}."
            ),
        )

    return TransitionResult(allowed=True)


def get_valid_transitions(current: JobStatus) -> list[JobStatus]:
    """Return the statuses reachable from ``current``, sorted by value."""
    return sorted(VALID_TRANSITIONS.get(current, set()), key=lambda s: s.value)


def is_terminal(status: JobStatus) -> bool:
    """Return True if no further transitions are possible from ``status``."""
    return status in TERMINAL_STATUSES

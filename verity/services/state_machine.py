"""
Verity — Verity-Date state machine.

Pure functions over persisted date fields: the lifecycle state, the
combined feedback outcome with its framing, and the session countdown.
Nothing here touches the database.
"""

from __future__ import annotations

from datetime import datetime

DATE_REQUESTED = "date-requested"
IN_SESSION = "in-session"
FEEDBACK_COLLECTION = "feedback-collection"
RESOLVED = "resolved"

OUTCOME_WAITING = "waiting-on-other"
OUTCOME_MUTUAL_YES = "mutual-yes"
OUTCOME_NOT_MUTUAL = "not-mutual"


def date_state(verity_date, now: datetime) -> str:
    """Derive the lifecycle state of a Verity-Date from its persisted fields.

    ``room-provisioning`` is never persisted: it only exists for the duration
    of an ``accept_date`` call, and a failed call leaves the date requested.
    """
    if verity_date.completed:
        return RESOLVED
    if verity_date.room_url is None:
        return DATE_REQUESTED
    if verity_date.session_closed_at is not None:
        return FEEDBACK_COLLECTION
    if verity_date.session_ends_at is not None and now >= verity_date.session_ends_at:
        return FEEDBACK_COLLECTION
    if verity_date.user1_feedback is not None and verity_date.user2_feedback is not None:
        return FEEDBACK_COLLECTION
    return IN_SESSION


def feedback_outcome(user1_feedback: str | None, user2_feedback: str | None) -> str:
    if user1_feedback is None or user2_feedback is None:
        return OUTCOME_WAITING
    if user1_feedback == "yes" and user2_feedback == "yes":
        return OUTCOME_MUTUAL_YES
    return OUTCOME_NOT_MUTUAL


def outcome_framing(user1_feedback: str | None, user2_feedback: str | None) -> str:
    """Tone of the message shown once both verdicts are in."""
    outcome = feedback_outcome(user1_feedback, user2_feedback)
    if outcome == OUTCOME_WAITING:
        return "waiting"
    if outcome == OUTCOME_MUTUAL_YES:
        return "celebrate"
    if "no" in (user1_feedback, user2_feedback):
        return "parted-respectfully"
    return "no-decision"


def seconds_remaining(verity_date, now: datetime) -> int:
    if verity_date.session_ends_at is None or date_state(verity_date, now) != IN_SESSION:
        return 0
    return max(0, int((verity_date.session_ends_at - now).total_seconds()))

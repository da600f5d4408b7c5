"""Governance rules - blind-phase visibility, admin allowlist, judgment validity.

All functions here are pure and total over their documented inputs.
"""

from collections.abc import Mapping
from typing import Any

from deliberate.errors import ValidationFailed
from deliberate.storage.base import DuplicateKeyError

DECISION_STATUSES = ("draft", "open", "closed")
ATTACHMENT_CONTEXTS = ("decision", "judgment", "comment", "coaching")

MIN_SCORE = 1
MAX_SCORE = 10
MIN_RATIONALE_LENGTH = 20

# SQLSTATE for unique_violation
UNIQUE_VIOLATION_CODE = "23505"

# Writer-triggered status moves; nothing leaves "closed"
_ALLOWED_TRANSITIONS = {
    "draft": {"open", "closed"},
    "open": {"closed"},
    "closed": set(),
}


def can_reveal_peer_judgments(status: str) -> bool:
    """Peers' judgments become visible only once the decision is closed."""
    return status == "closed"


def can_view_attachment(
    decision_status: str,
    context: str,
    owner_user_id: str,
    requesting_user_id: str,
) -> bool:
    """Judgment-context attachments follow the same blind phase as judgments."""
    if decision_status == "closed":
        return True
    if context == "judgment":
        return owner_user_id == requesting_user_id
    return True


def is_admin_by_email(email: str | None, admin_emails: str | None) -> bool:
    """True iff a configured comma-separated allowlist contains the email.

    An empty or unset allowlist admits nobody.
    """
    configured = [
        entry.strip().lower() for entry in (admin_emails or "").split(",") if entry.strip()
    ]
    if not configured:
        return False
    return (email or "").strip().lower() in configured


def is_unique_violation(error: Any) -> bool:
    """Recognize a persistence-layer unique-constraint violation."""
    if error is None:
        return False
    if isinstance(error, DuplicateKeyError):
        return True
    if isinstance(error, Mapping):
        return error.get("code") == UNIQUE_VIOLATION_CODE
    for attr in ("sqlstate", "pgcode", "code"):
        if getattr(error, attr, None) == UNIQUE_VIOLATION_CODE:
            return True
    return False


def can_transition(current: str, target: str) -> bool:
    """Whether a decision may move from ``current`` to ``target`` status."""
    return target in _ALLOWED_TRANSITIONS.get(current, set())


def validate_judgment(score: Any, rationale: Any) -> None:
    """Raise ValidationFailed naming the first violated judgment rule."""
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationFailed("Score must be a whole number.", field="score")
    if score < MIN_SCORE or score > MAX_SCORE:
        raise ValidationFailed(
            f"Score must be between {MIN_SCORE} and {MAX_SCORE}.", field="score"
        )
    if not isinstance(rationale, str) or len(rationale) < MIN_RATIONALE_LENGTH:
        raise ValidationFailed(
            f"Rationale must be at least {MIN_RATIONALE_LENGTH} characters.",
            field="rationale",
        )

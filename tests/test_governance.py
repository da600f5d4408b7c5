"""Unit tests for governance rules."""

import pytest

from deliberate.engine.governance import (
    can_reveal_peer_judgments,
    can_transition,
    can_view_attachment,
    is_admin_by_email,
    is_unique_violation,
    validate_judgment,
)
from deliberate.errors import ValidationFailed
from deliberate.storage.base import DuplicateKeyError, StorageError

RATIONALE = "Long enough rationale for a judgment."


@pytest.mark.parametrize("status,expected", [("draft", False), ("open", False), ("closed", True)])
def test_reveal_only_when_closed(status, expected):
    """Peers are revealed only once closed."""
    assert can_reveal_peer_judgments(status) is expected


def test_judgment_attachment_hidden_from_peers_while_open():
    """Judgment evidence follows the blind phase."""
    kwargs = {"decision_status": "open", "context": "judgment", "owner_user_id": "alice"}
    assert can_view_attachment(requesting_user_id="bob", **kwargs) is False
    assert can_view_attachment(requesting_user_id="alice", **kwargs) is True


def test_all_attachments_visible_once_closed():
    """Closing opens everything."""
    assert can_view_attachment("closed", "judgment", "alice", "bob") is True


@pytest.mark.parametrize("context", ["decision", "comment", "coaching"])
def test_non_judgment_attachments_never_blind(context):
    """Only judgment context is gated."""
    assert can_view_attachment("open", context, "alice", "bob") is True


def test_admin_allowlist_fails_closed():
    """No allowlist means no admins."""
    assert is_admin_by_email("a@x.com", None) is False
    assert is_admin_by_email("a@x.com", "") is False
    assert is_admin_by_email("a@x.com", " , ") is False


def test_admin_allowlist_normalizes_case_and_whitespace():
    """Entries and emails are compared trimmed and lower-cased."""
    assert is_admin_by_email("a@x.com", "a@x.com") is True
    assert is_admin_by_email("A@X.com", "  b@y.org , A@x.COM ") is True
    assert is_admin_by_email("c@z.com", "a@x.com,b@y.org") is False
    assert is_admin_by_email(None, "a@x.com") is False


def test_unique_violation_recognition():
    """23505 is a duplicate; other codes are not."""
    assert is_unique_violation({"code": "23505"}) is True
    assert is_unique_violation({"code": "22000"}) is False
    assert is_unique_violation(DuplicateKeyError("uq_judgments_decision_user")) is True
    assert is_unique_violation(StorageError("connection reset")) is False
    assert is_unique_violation(None) is False


def test_unique_violation_driver_attributes():
    """Driver errors expose the code as sqlstate or pgcode."""

    class DriverError(Exception):
        sqlstate = "23505"

    assert is_unique_violation(DriverError()) is True


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("draft", "open", True),
        ("draft", "closed", True),
        ("open", "closed", True),
        ("open", "draft", False),
        ("closed", "open", False),
        ("closed", "draft", False),
    ],
)
def test_status_transitions_move_forward_only(current, target, allowed):
    """Status never moves backwards."""
    assert can_transition(current, target) is allowed


def test_validate_judgment_accepts_bounds():
    """1 and 10 are both valid."""
    validate_judgment(1, RATIONALE)
    validate_judgment(10, RATIONALE)


@pytest.mark.parametrize("score", [0, 11, -3, 5.5, "7", True, None])
def test_validate_judgment_rejects_bad_scores(score):
    """Scores must be whole numbers in range."""
    with pytest.raises(ValidationFailed) as exc_info:
        validate_judgment(score, RATIONALE)
    assert exc_info.value.field == "score"


def test_validate_judgment_rejects_short_rationale():
    """Rationale needs 20 characters."""
    with pytest.raises(ValidationFailed) as exc_info:
        validate_judgment(5, "too short")
    assert exc_info.value.field == "rationale"
    validate_judgment(5, "x" * 20)

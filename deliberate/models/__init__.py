"""Database models."""

from deliberate.models.user import User
from deliberate.models.decision import Comment, Decision, Judgment
from deliberate.models.attachment import Attachment
from deliberate.models.audit import AuditLog
from deliberate.models.nonprofit import DecisionNonprofit, NonprofitProfile, OrgGrantHistory
from deliberate.models.grant import DecisionGrant, GrantAlert, GrantOpportunityRecord

__all__ = [
    "User",
    "Decision",
    "Judgment",
    "Comment",
    "Attachment",
    "AuditLog",
    "NonprofitProfile",
    "DecisionNonprofit",
    "OrgGrantHistory",
    "GrantOpportunityRecord",
    "DecisionGrant",
    "GrantAlert",
]

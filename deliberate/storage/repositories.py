"""SQLAlchemy-backed storage for decisions, judgments, attachments, org and grant data."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deliberate.engine.governance import is_unique_violation
from deliberate.models import (
    Attachment,
    AuditLog,
    Comment,
    Decision,
    DecisionGrant,
    DecisionNonprofit,
    GrantAlert,
    GrantOpportunityRecord,
    Judgment,
    NonprofitProfile,
    OrgGrantHistory,
)
from deliberate.storage.base import DuplicateKeyError, NotFoundError, StorageError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _constraint_name(exc: IntegrityError) -> str | None:
    diag = getattr(exc.orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name
    return getattr(exc.orig, "constraint_name", None)


class SqlStorage:
    """Storage implementation over an AsyncSession.

    Writes are flushed, not committed; the request-scoped ``get_db``
    dependency owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _flush(self) -> None:
        """Flush pending writes, translating driver errors to StorageError."""
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            if is_unique_violation(exc.orig):
                raise DuplicateKeyError(_constraint_name(exc)) from exc
            raise StorageError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StorageError(str(exc)) from exc

    # ── Decisions ──────────────────────────────────────────────────────────

    async def list_decisions(self) -> list[Decision]:
        """All decisions, newest first."""
        result = await self.db.execute(select(Decision).order_by(Decision.created_at.desc()))
        return list(result.scalars().all())

    async def get_decision(self, decision_id: int) -> Decision | None:
        result = await self.db.execute(select(Decision).where(Decision.id == decision_id))
        return result.scalar_one_or_none()

    async def create_decision(
        self,
        title: str,
        description: str,
        category: str,
        status: str,
        deadline: datetime | None,
        outcome: str | None,
        author_id: str | None,
        is_demo: bool = False,
    ) -> Decision:
        now = _utcnow()
        decision = Decision(
            title=title,
            description=description,
            category=category,
            status=status,
            deadline=deadline,
            outcome=outcome,
            author_id=author_id,
            consensus_reached=False,
            is_demo=is_demo,
            created_at=now,
            updated_at=now,
        )
        self.db.add(decision)
        await self._flush()
        return decision

    async def update_decision(self, decision_id: int, changes: dict[str, Any]) -> Decision:
        decision = await self.get_decision(decision_id)
        if decision is None:
            raise NotFoundError(f"decision {decision_id}")
        for key, value in changes.items():
            setattr(decision, key, value)
        decision.updated_at = _utcnow()
        await self._flush()
        return decision

    async def delete_decision(self, decision_id: int) -> None:
        decision = await self.get_decision(decision_id)
        if decision is None:
            raise NotFoundError(f"decision {decision_id}")
        await self.db.delete(decision)
        await self._flush()

    # ── Judgments ──────────────────────────────────────────────────────────

    async def create_judgment(
        self, decision_id: int, user_id: str, score: int, rationale: str
    ) -> Judgment:
        """Insert a judgment; uq_judgments_decision_user backs the duplicate check."""
        judgment = Judgment(
            decision_id=decision_id,
            user_id=user_id,
            score=score,
            rationale=rationale,
            submitted_at=_utcnow(),
        )
        self.db.add(judgment)
        await self._flush()
        return judgment

    async def get_judgments(self, decision_id: int) -> list[Judgment]:
        result = await self.db.execute(
            select(Judgment)
            .where(Judgment.decision_id == decision_id)
            .order_by(Judgment.submitted_at)
        )
        return list(result.scalars().all())

    async def get_user_judgment(self, decision_id: int, user_id: str) -> Judgment | None:
        result = await self.db.execute(
            select(Judgment).where(
                Judgment.decision_id == decision_id,
                Judgment.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    # ── Comments ───────────────────────────────────────────────────────────

    async def create_comment(self, decision_id: int, user_id: str, content: str) -> Comment:
        comment = Comment(
            decision_id=decision_id,
            user_id=user_id,
            content=content,
            is_ai_generated=False,
            created_at=_utcnow(),
        )
        self.db.add(comment)
        await self._flush()
        return comment

    async def get_comments(self, decision_id: int) -> list[Comment]:
        result = await self.db.execute(
            select(Comment)
            .where(Comment.decision_id == decision_id)
            .order_by(Comment.created_at)
        )
        return list(result.scalars().all())

    # ── Attachments ────────────────────────────────────────────────────────

    async def create_attachment(
        self,
        decision_id: int,
        user_id: str,
        file_name: str,
        file_type: str,
        file_size: int,
        object_path: str,
        context: str,
        extracted_text: str | None,
    ) -> Attachment:
        attachment = Attachment(
            decision_id=decision_id,
            user_id=user_id,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            object_path=object_path,
            context=context,
            extracted_text=extracted_text,
            created_at=_utcnow(),
        )
        self.db.add(attachment)
        await self._flush()
        return attachment

    async def get_attachments(self, decision_id: int) -> list[Attachment]:
        result = await self.db.execute(
            select(Attachment)
            .where(Attachment.decision_id == decision_id)
            .order_by(Attachment.created_at)
        )
        return list(result.scalars().all())

    async def get_attachment(self, attachment_id: int) -> Attachment | None:
        result = await self.db.execute(select(Attachment).where(Attachment.id == attachment_id))
        return result.scalar_one_or_none()

    async def get_attachment_by_object_path(self, object_path: str) -> Attachment | None:
        result = await self.db.execute(
            select(Attachment).where(Attachment.object_path == object_path)
        )
        return result.scalar_one_or_none()

    async def delete_attachment(self, attachment_id: int) -> None:
        await self.db.execute(delete(Attachment).where(Attachment.id == attachment_id))
        await self._flush()

    # ── Audit ──────────────────────────────────────────────────────────────

    async def create_audit_log(
        self,
        action: str,
        entity_type: str,
        entity_id: int,
        user_id: str | None = None,
        details: dict | None = None,
    ) -> AuditLog:
        """Append an audit record. There is no update or delete counterpart."""
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            created_at=_utcnow(),
        )
        self.db.add(entry)
        await self._flush()
        return entry

    async def get_audit_logs(self) -> list[AuditLog]:
        result = await self.db.execute(select(AuditLog).order_by(AuditLog.created_at.desc()))
        return list(result.scalars().all())

    # ── Nonprofits & org history ───────────────────────────────────────────

    async def get_nonprofit_by_ein(self, ein: str) -> NonprofitProfile | None:
        result = await self.db.execute(
            select(NonprofitProfile).where(NonprofitProfile.ein == ein.replace("-", ""))
        )
        return result.scalar_one_or_none()

    async def upsert_nonprofit_profile(self, ein: str, **fields: Any) -> NonprofitProfile:
        """Insert or refresh the cached profile for ``ein``."""
        normalized = ein.replace("-", "")
        profile = await self.get_nonprofit_by_ein(normalized)
        if profile is None:
            profile = NonprofitProfile(ein=normalized, **fields)
            self.db.add(profile)
        else:
            for key, value in fields.items():
                setattr(profile, key, value)
        profile.fetched_at = _utcnow()
        await self._flush()
        return profile

    async def get_decision_nonprofits(self, decision_id: int) -> list[NonprofitProfile]:
        result = await self.db.execute(
            select(NonprofitProfile)
            .join(
                DecisionNonprofit,
                DecisionNonprofit.nonprofit_profile_id == NonprofitProfile.id,
            )
            .where(DecisionNonprofit.decision_id == decision_id)
        )
        return list(result.scalars().all())

    async def link_nonprofit_to_decision(
        self, decision_id: int, nonprofit_id: int, user_id: str
    ) -> None:
        self.db.add(
            DecisionNonprofit(
                decision_id=decision_id,
                nonprofit_profile_id=nonprofit_id,
                added_by=user_id,
                created_at=_utcnow(),
            )
        )
        await self._flush()

    async def get_org_grant_history(self) -> list[OrgGrantHistory]:
        result = await self.db.execute(
            select(OrgGrantHistory).order_by(OrgGrantHistory.year.desc())
        )
        return list(result.scalars().all())

    # ── Grants ─────────────────────────────────────────────────────────────

    async def upsert_grant_opportunity(
        self, external_id: str | None, **fields: Any
    ) -> GrantOpportunityRecord:
        """Refresh the opportunity with this upstream id, or insert a new one."""
        grant = None
        if external_id:
            result = await self.db.execute(
                select(GrantOpportunityRecord).where(
                    GrantOpportunityRecord.external_id == external_id
                )
            )
            grant = result.scalar_one_or_none()
        if grant is None:
            grant = GrantOpportunityRecord(external_id=external_id, **fields)
            self.db.add(grant)
        else:
            for key, value in fields.items():
                setattr(grant, key, value)
        grant.fetched_at = _utcnow()
        await self._flush()
        return grant

    async def get_decision_grants(self, decision_id: int) -> list[GrantOpportunityRecord]:
        result = await self.db.execute(
            select(GrantOpportunityRecord)
            .join(DecisionGrant, DecisionGrant.grant_opportunity_id == GrantOpportunityRecord.id)
            .where(DecisionGrant.decision_id == decision_id)
        )
        return list(result.scalars().all())

    async def link_grant_to_decision(self, decision_id: int, grant_id: int, user_id: str) -> None:
        self.db.add(
            DecisionGrant(
                decision_id=decision_id,
                grant_opportunity_id=grant_id,
                added_by=user_id,
                created_at=_utcnow(),
            )
        )
        await self._flush()

    async def get_grant_alerts(
        self, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[GrantAlert], int]:
        """One page of alerts, most relevant first, and the filtered total."""
        query = select(GrantAlert)
        if status:
            query = query.where(GrantAlert.status == status)
        result = await self.db.execute(
            query.order_by(GrantAlert.relevance_score.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), await self.count_grant_alerts(status)

    async def get_grant_alert(self, alert_id: int) -> GrantAlert | None:
        result = await self.db.execute(select(GrantAlert).where(GrantAlert.id == alert_id))
        return result.scalar_one_or_none()

    async def create_grant_alert(
        self,
        grant_opportunity_id: int,
        relevance_score: float,
        relevance_reason: str | None = None,
        matched_keywords: list[str] | None = None,
    ) -> GrantAlert:
        alert = GrantAlert(
            grant_opportunity_id=grant_opportunity_id,
            relevance_score=relevance_score,
            relevance_reason=relevance_reason,
            matched_keywords=matched_keywords,
            status="new",
            created_at=_utcnow(),
        )
        self.db.add(alert)
        await self._flush()
        return alert

    async def update_grant_alert_status(self, alert_id: int, status: str) -> GrantAlert:
        alert = await self.get_grant_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"grant alert {alert_id}")
        alert.status = status
        await self._flush()
        return alert

    async def count_grant_alerts(self, status: str | None = None) -> int:
        query = select(func.count()).select_from(GrantAlert)
        if status:
            query = query.where(GrantAlert.status == status)
        result = await self.db.execute(query)
        return result.scalar_one()

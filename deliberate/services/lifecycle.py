"""Decision lifecycle - the blind-judgment protocol over a Storage collaborator.

Judgments are sealed on write and hidden from peers until the decision is
closed. Every read recomputes visibility from the current decision status.
"""

import asyncio
import logging
from typing import Any

from deliberate.engine.governance import (
    can_reveal_peer_judgments,
    can_transition,
    can_view_attachment,
    is_unique_violation,
    validate_judgment,
)
from deliberate.engine.variance import DEFAULT_NOISE_THRESHOLD, calculate_variance
from deliberate.errors import (
    DuplicateJudgment,
    ExtractionFailure,
    Forbidden,
    NotFound,
    ValidationFailed,
)
from deliberate.schemas.judgment import VarianceResult
from deliberate.storage.base import DuplicateKeyError, NotFoundError, Storage, StorageError

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "title",
    "description",
    "category",
    "status",
    "deadline",
    "outcome",
    "consensus_reached",
)


class DecisionLifecycle:
    """Owns every mutation of decisions, judgments, comments and attachments."""

    def __init__(
        self,
        storage: Storage,
        noise_threshold: float = DEFAULT_NOISE_THRESHOLD,
        file_storage=None,
        extractor=None,
        max_extracted_chars: int = 50_000,
    ):
        self.storage = storage
        self.noise_threshold = noise_threshold
        self.file_storage = file_storage
        self.extractor = extractor
        self.max_extracted_chars = max_extracted_chars

    async def _require_decision(self, decision_id: int):
        decision = await self.storage.get_decision(decision_id)
        if decision is None:
            raise NotFound("Decision not found")
        return decision

    # ── Decisions ──────────────────────────────────────────────────────────

    async def list_decisions(self) -> list[Any]:
        return await self.storage.list_decisions()

    async def get_decision(self, decision_id: int):
        return await self._require_decision(decision_id)

    async def create_decision(
        self,
        title: str,
        description: str,
        category: str,
        author_id: str | None,
        status: str = "draft",
        deadline=None,
        outcome: str | None = None,
    ):
        """Create a decision and record the audit event."""
        decision = await self.storage.create_decision(
            title=title,
            description=description,
            category=category,
            status=status,
            deadline=deadline,
            outcome=outcome,
            author_id=author_id,
        )
        await self.storage.create_audit_log(
            action="decision_created",
            entity_type="decision",
            entity_id=decision.id,
            user_id=author_id,
            details={"title": title, "category": category, "status": status},
        )
        return decision

    async def update_decision(
        self, decision_id: int, changes: dict[str, Any], user_id: str | None = None
    ):
        """
        Apply field changes. Status may only move forward
        (draft -> open -> closed); a closed decision cannot be reopened.
        """
        decision = await self._require_decision(decision_id)
        updates = {k: v for k, v in changes.items() if k in _UPDATABLE_FIELDS}

        new_status = updates.get("status")
        if new_status is not None:
            if new_status == decision.status:
                updates.pop("status")
            elif not can_transition(decision.status, new_status):
                raise ValidationFailed(
                    f"Cannot change status from {decision.status} to {new_status}.",
                    field="status",
                )

        if not updates:
            return decision

        previous_status = decision.status
        was_consensus = bool(decision.consensus_reached)
        try:
            updated = await self.storage.update_decision(decision_id, updates)
        except NotFoundError as exc:
            raise NotFound("Decision not found") from exc

        if updates.get("status") == "closed":
            await self.storage.create_audit_log(
                action="decision_closed",
                entity_type="decision",
                entity_id=decision_id,
                user_id=user_id,
                details={"previousStatus": previous_status},
            )
        if updates.get("consensus_reached") and not was_consensus:
            await self.storage.create_audit_log(
                action="consensus_reached",
                entity_type="decision",
                entity_id=decision_id,
                user_id=user_id,
                details={"outcome": updated.outcome},
            )
        return updated

    async def close_decision(self, decision_id: int, user_id: str | None = None):
        """Close the decision, revealing all judgments. Irreversible."""
        return await self.update_decision(decision_id, {"status": "closed"}, user_id=user_id)

    async def delete_decision(self, decision_id: int) -> None:
        """Delete a decision; judgments, comments and attachments cascade."""
        try:
            await self.storage.delete_decision(decision_id)
        except NotFoundError as exc:
            raise NotFound("Decision not found") from exc

    # ── Judgments ──────────────────────────────────────────────────────────

    async def submit_judgment(self, decision_id: int, user_id: str, score: Any, rationale: Any):
        """
        Seal one judgment for (decision, user).

        The existence pre-check and the storage uniqueness constraint raise
        the same DuplicateJudgment, so callers cannot tell which one fired.
        """
        validate_judgment(score, rationale)
        decision = await self._require_decision(decision_id)
        if decision.status == "closed":
            raise ValidationFailed("This decision is closed to new judgments.", field="status")

        existing = await self.storage.get_user_judgment(decision_id, user_id)
        if existing is not None:
            raise DuplicateJudgment()

        try:
            judgment = await self.storage.create_judgment(
                decision_id=decision_id,
                user_id=user_id,
                score=score,
                rationale=rationale,
            )
        except StorageError as exc:
            if is_unique_violation(exc):
                logger.info(
                    "Concurrent duplicate judgment for decision %s by user %s",
                    decision_id,
                    user_id,
                )
                raise DuplicateJudgment() from exc
            raise

        # Score stays out of the audit trail while the decision is blind.
        await self.storage.create_audit_log(
            action="judgment_submitted",
            entity_type="decision",
            entity_id=decision_id,
            user_id=user_id,
            details={"judgmentId": judgment.id},
        )
        return judgment

    async def list_judgments(self, decision_id: int, requesting_user_id: str) -> list[Any]:
        """All judgments once closed; before that, only the requester's own."""
        decision = await self._require_decision(decision_id)
        judgments = await self.storage.get_judgments(decision_id)
        if can_reveal_peer_judgments(decision.status):
            return judgments
        return [j for j in judgments if j.user_id == requesting_user_id]

    async def compute_noise(self, decision_id: int) -> VarianceResult:
        """Dispersion statistics over every submitted score."""
        await self._require_decision(decision_id)
        judgments = await self.storage.get_judgments(decision_id)
        return calculate_variance([j.score for j in judgments], self.noise_threshold)

    # ── Comments ───────────────────────────────────────────────────────────

    async def add_comment(self, decision_id: int, user_id: str, content: str):
        if not content or not content.strip():
            raise ValidationFailed("Comment cannot be empty.", field="content")
        await self._require_decision(decision_id)
        return await self.storage.create_comment(decision_id, user_id, content)

    async def list_comments(self, decision_id: int) -> list[Any]:
        await self._require_decision(decision_id)
        return await self.storage.get_comments(decision_id)

    # ── Attachments ────────────────────────────────────────────────────────

    async def _extract_text(self, object_path: str, file_type: str) -> str | None:
        """Best-effort text extraction; failures leave the attachment textless."""
        if self.extractor is None or self.file_storage is None:
            return None
        if not self.extractor.is_parseable_type(file_type):
            return None
        try:
            data = await self.file_storage.read_file(object_path)
            text = await asyncio.to_thread(self.extractor.extract_text, data, file_type)
        except (ExtractionFailure, OSError) as exc:
            logger.warning("Text extraction failed for %s: %s", object_path, exc)
            return None
        if text and len(text) > self.max_extracted_chars:
            text = text[: self.max_extracted_chars] + "\n[...truncated]"
        return text or None

    async def attach_document(
        self,
        decision_id: int,
        user_id: str,
        file_name: str,
        file_type: str,
        file_size: int,
        object_path: str,
        context: str = "decision",
    ):
        """Record an uploaded file against a decision. Each upload attaches once."""
        await self._require_decision(decision_id)
        extracted_text = await self._extract_text(object_path, file_type)
        try:
            return await self.storage.create_attachment(
                decision_id=decision_id,
                user_id=user_id,
                file_name=file_name,
                file_type=file_type,
                file_size=file_size,
                object_path=object_path,
                context=context,
                extracted_text=extracted_text,
            )
        except DuplicateKeyError as exc:
            raise ValidationFailed("File already attached", field="objectPath") from exc

    async def list_attachments(self, decision_id: int, requesting_user_id: str) -> list[Any]:
        """Attachments the requester may see under blind-phase gating."""
        decision = await self._require_decision(decision_id)
        attachments = await self.storage.get_attachments(decision_id)
        return [
            a
            for a in attachments
            if can_view_attachment(
                decision_status=decision.status,
                context=a.context,
                owner_user_id=a.user_id,
                requesting_user_id=requesting_user_id,
            )
        ]

    async def _check_attachment_access(self, attachment, requesting_user_id: str) -> None:
        if attachment.decision_id is None:
            return
        decision = await self.storage.get_decision(attachment.decision_id)
        if decision is not None and not can_view_attachment(
            decision_status=decision.status,
            context=attachment.context,
            owner_user_id=attachment.user_id,
            requesting_user_id=requesting_user_id,
        ):
            raise Forbidden()

    async def get_attachment(self, attachment_id: int, requesting_user_id: str):
        attachment = await self.storage.get_attachment(attachment_id)
        if attachment is None:
            raise NotFound("Attachment not found")
        await self._check_attachment_access(attachment, requesting_user_id)
        return attachment

    async def get_attachment_by_object_path(self, object_path: str, requesting_user_id: str):
        attachment = await self.storage.get_attachment_by_object_path(object_path)
        if attachment is None:
            raise NotFound("File not found")
        await self._check_attachment_access(attachment, requesting_user_id)
        return attachment

    async def delete_attachment(self, attachment_id: int, requesting_user_id: str) -> None:
        """Only the uploader may delete an attachment."""
        attachment = await self.storage.get_attachment(attachment_id)
        if attachment is None:
            raise NotFound("Attachment not found")
        if attachment.user_id != requesting_user_id:
            raise Forbidden()
        if self.file_storage is not None:
            try:
                await self.file_storage.delete_file(attachment.object_path)
            except OSError as exc:
                logger.warning("Could not remove %s: %s", attachment.object_path, exc)
        await self.storage.delete_attachment(attachment_id)

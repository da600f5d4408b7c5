"""Shared fixtures: an in-memory Storage and a lifecycle over it."""

import asyncio
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from deliberate.services.lifecycle import DecisionLifecycle
from deliberate.storage.base import DuplicateKeyError, NotFoundError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStorage:
    """Storage fake. Every call yields to the loop once, so concurrent
    callers interleave the way they would against a real database."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.decisions: dict[int, SimpleNamespace] = {}
        self.judgments: list[SimpleNamespace] = []
        self.comments: list[SimpleNamespace] = []
        self.attachments: dict[int, SimpleNamespace] = {}
        self.audit_logs: list[SimpleNamespace] = []
        self.nonprofits: dict[str, SimpleNamespace] = {}
        self.links: list[tuple[int, int]] = []
        self.grant_history: list[SimpleNamespace] = []
        self.grants: dict[int, SimpleNamespace] = {}
        self.grant_links: list[tuple[int, int]] = []
        self.grant_alerts: dict[int, SimpleNamespace] = {}

    async def _tick(self) -> None:
        await asyncio.sleep(0)

    async def list_decisions(self):
        await self._tick()
        return sorted(self.decisions.values(), key=lambda d: d.id, reverse=True)

    async def get_decision(self, decision_id):
        await self._tick()
        return self.decisions.get(decision_id)

    async def create_decision(
        self, title, description, category, status, deadline, outcome, author_id, is_demo=False
    ):
        await self._tick()
        decision = SimpleNamespace(
            id=next(self._ids),
            title=title,
            description=description,
            category=category,
            status=status,
            deadline=deadline,
            outcome=outcome,
            author_id=author_id,
            consensus_reached=False,
            is_demo=is_demo,
            created_at=_now(),
            updated_at=_now(),
        )
        self.decisions[decision.id] = decision
        return decision

    async def update_decision(self, decision_id, changes: dict[str, Any]):
        await self._tick()
        decision = self.decisions.get(decision_id)
        if decision is None:
            raise NotFoundError(f"decision {decision_id}")
        for key, value in changes.items():
            setattr(decision, key, value)
        decision.updated_at = _now()
        return decision

    async def delete_decision(self, decision_id):
        await self._tick()
        if self.decisions.pop(decision_id, None) is None:
            raise NotFoundError(f"decision {decision_id}")
        self.judgments = [j for j in self.judgments if j.decision_id != decision_id]
        self.comments = [c for c in self.comments if c.decision_id != decision_id]
        self.attachments = {
            k: a for k, a in self.attachments.items() if a.decision_id != decision_id
        }

    async def create_judgment(self, decision_id, user_id, score, rationale):
        await self._tick()
        if any(j.decision_id == decision_id and j.user_id == user_id for j in self.judgments):
            raise DuplicateKeyError("uq_judgments_decision_user")
        judgment = SimpleNamespace(
            id=next(self._ids),
            decision_id=decision_id,
            user_id=user_id,
            score=score,
            rationale=rationale,
            submitted_at=_now(),
        )
        self.judgments.append(judgment)
        return judgment

    async def get_judgments(self, decision_id):
        await self._tick()
        return [j for j in self.judgments if j.decision_id == decision_id]

    async def get_user_judgment(self, decision_id, user_id):
        await self._tick()
        for j in self.judgments:
            if j.decision_id == decision_id and j.user_id == user_id:
                return j
        return None

    async def create_comment(self, decision_id, user_id, content):
        await self._tick()
        comment = SimpleNamespace(
            id=next(self._ids),
            decision_id=decision_id,
            user_id=user_id,
            content=content,
            is_ai_generated=False,
            created_at=_now(),
        )
        self.comments.append(comment)
        return comment

    async def get_comments(self, decision_id):
        await self._tick()
        return [c for c in self.comments if c.decision_id == decision_id]

    async def create_attachment(
        self, decision_id, user_id, file_name, file_type, file_size, object_path, context, extracted_text
    ):
        await self._tick()
        if any(a.object_path == object_path for a in self.attachments.values()):
            raise DuplicateKeyError("attachments_object_path_key")
        attachment = SimpleNamespace(
            id=next(self._ids),
            decision_id=decision_id,
            user_id=user_id,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            object_path=object_path,
            context=context,
            extracted_text=extracted_text,
            created_at=_now(),
        )
        self.attachments[attachment.id] = attachment
        return attachment

    async def get_attachments(self, decision_id):
        await self._tick()
        return [a for a in self.attachments.values() if a.decision_id == decision_id]

    async def get_attachment(self, attachment_id):
        await self._tick()
        return self.attachments.get(attachment_id)

    async def get_attachment_by_object_path(self, object_path):
        await self._tick()
        for a in self.attachments.values():
            if a.object_path == object_path:
                return a
        return None

    async def delete_attachment(self, attachment_id):
        await self._tick()
        self.attachments.pop(attachment_id, None)

    async def create_audit_log(self, action, entity_type, entity_id, user_id=None, details=None):
        await self._tick()
        entry = SimpleNamespace(
            id=next(self._ids),
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            created_at=_now(),
        )
        self.audit_logs.append(entry)
        return entry

    async def get_audit_logs(self):
        await self._tick()
        return list(reversed(self.audit_logs))

    async def get_nonprofit_by_ein(self, ein):
        await self._tick()
        return self.nonprofits.get(ein.replace("-", ""))

    async def upsert_nonprofit_profile(self, ein, **fields):
        await self._tick()
        ein = ein.replace("-", "")
        profile = self.nonprofits.get(ein)
        if profile is None:
            profile = SimpleNamespace(
                id=next(self._ids),
                ein=ein,
                name="",
                city=None,
                state=None,
                tax_status=None,
                ntee_code=None,
                is_public_charity=None,
                is_tax_deductible=None,
                revenue=None,
                expenses=None,
                assets=None,
                employee_count=None,
                raw_data=None,
            )
            self.nonprofits[ein] = profile
        for key, value in fields.items():
            setattr(profile, key, value)
        profile.fetched_at = _now()
        return profile

    async def get_decision_nonprofits(self, decision_id):
        await self._tick()
        ids = {nid for did, nid in self.links if did == decision_id}
        return [p for p in self.nonprofits.values() if p.id in ids]

    async def link_nonprofit_to_decision(self, decision_id, nonprofit_id, user_id):
        await self._tick()
        self.links.append((decision_id, nonprofit_id))

    async def get_org_grant_history(self):
        await self._tick()
        return sorted(self.grant_history, key=lambda g: g.year, reverse=True)

    async def upsert_grant_opportunity(self, external_id, **fields):
        await self._tick()
        grant = next(
            (g for g in self.grants.values() if external_id and g.external_id == external_id),
            None,
        )
        if grant is None:
            grant = SimpleNamespace(
                id=next(self._ids),
                external_id=external_id,
                title="",
                agency=None,
                funding_category=None,
                award_floor=None,
                award_ceiling=None,
                open_date=None,
                close_date=None,
                description=None,
                raw_data=None,
            )
            self.grants[grant.id] = grant
        for key, value in fields.items():
            setattr(grant, key, value)
        grant.fetched_at = _now()
        return grant

    async def get_decision_grants(self, decision_id):
        await self._tick()
        return [self.grants[gid] for did, gid in self.grant_links if did == decision_id]

    async def link_grant_to_decision(self, decision_id, grant_id, user_id):
        await self._tick()
        self.grant_links.append((decision_id, grant_id))

    async def get_grant_alerts(self, status=None, limit=50, offset=0):
        await self._tick()
        matching = [a for a in self.grant_alerts.values() if not status or a.status == status]
        matching.sort(key=lambda a: a.relevance_score, reverse=True)
        return matching[offset : offset + limit], len(matching)

    async def get_grant_alert(self, alert_id):
        await self._tick()
        return self.grant_alerts.get(alert_id)

    async def create_grant_alert(
        self, grant_opportunity_id, relevance_score, relevance_reason=None, matched_keywords=None
    ):
        await self._tick()
        alert = SimpleNamespace(
            id=next(self._ids),
            grant_opportunity_id=grant_opportunity_id,
            relevance_score=relevance_score,
            relevance_reason=relevance_reason,
            matched_keywords=matched_keywords,
            status="new",
            notified_at=None,
            created_at=_now(),
            grant=self.grants.get(grant_opportunity_id),
        )
        self.grant_alerts[alert.id] = alert
        return alert

    async def update_grant_alert_status(self, alert_id, status):
        await self._tick()
        alert = self.grant_alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"grant alert {alert_id}")
        alert.status = status
        return alert

    async def count_grant_alerts(self, status=None):
        await self._tick()
        return sum(1 for a in self.grant_alerts.values() if not status or a.status == status)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def lifecycle(storage):
    return DecisionLifecycle(storage)


@pytest.fixture
def make_decision(storage):
    """Insert a decision directly, bypassing lifecycle audit events."""

    async def _make(status="open", title="Expand day program", author_id="author"):
        return await storage.create_decision(
            title=title,
            description="Add a second cohort to the day program.",
            category="Programmatic",
            status=status,
            deadline=None,
            outcome=None,
            author_id=author_id,
        )

    return _make

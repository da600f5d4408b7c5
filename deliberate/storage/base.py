"""Persistence interface the orchestrators depend on.

Implementations report failures through the ``StorageError`` family instead
of driver-specific exceptions, so duplicate handling does not depend on a
particular database engine.
"""

from datetime import datetime
from typing import Any, Protocol


class StorageError(Exception):
    """Any persistence failure not covered by a more specific subclass."""


class DuplicateKeyError(StorageError):
    """A uniqueness constraint rejected the write."""

    def __init__(self, constraint: str | None = None):
        super().__init__(f"Duplicate key violates {constraint or 'unique constraint'}")
        self.constraint = constraint


class NotFoundError(StorageError):
    """The row targeted by a mutation does not exist."""


class Storage(Protocol):
    """Decisions, judgments, comments, attachments, audit, org and grant records."""

    async def list_decisions(self) -> list[Any]: ...

    async def get_decision(self, decision_id: int) -> Any | None: ...

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
    ) -> Any: ...

    async def update_decision(self, decision_id: int, changes: dict[str, Any]) -> Any: ...

    async def delete_decision(self, decision_id: int) -> None: ...

    async def create_judgment(
        self, decision_id: int, user_id: str, score: int, rationale: str
    ) -> Any: ...

    async def get_judgments(self, decision_id: int) -> list[Any]: ...

    async def get_user_judgment(self, decision_id: int, user_id: str) -> Any | None: ...

    async def create_comment(self, decision_id: int, user_id: str, content: str) -> Any: ...

    async def get_comments(self, decision_id: int) -> list[Any]: ...

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
    ) -> Any: ...

    async def get_attachments(self, decision_id: int) -> list[Any]: ...

    async def get_attachment(self, attachment_id: int) -> Any | None: ...

    async def get_attachment_by_object_path(self, object_path: str) -> Any | None: ...

    async def delete_attachment(self, attachment_id: int) -> None: ...

    async def create_audit_log(
        self,
        action: str,
        entity_type: str,
        entity_id: int,
        user_id: str | None = None,
        details: dict | None = None,
    ) -> Any: ...

    async def get_audit_logs(self) -> list[Any]: ...

    async def get_nonprofit_by_ein(self, ein: str) -> Any | None: ...

    async def upsert_nonprofit_profile(self, ein: str, **fields: Any) -> Any: ...

    async def get_decision_nonprofits(self, decision_id: int) -> list[Any]: ...

    async def link_nonprofit_to_decision(
        self, decision_id: int, nonprofit_id: int, user_id: str
    ) -> None: ...

    async def get_org_grant_history(self) -> list[Any]: ...

    async def upsert_grant_opportunity(self, external_id: str | None, **fields: Any) -> Any: ...

    async def get_decision_grants(self, decision_id: int) -> list[Any]: ...

    async def link_grant_to_decision(self, decision_id: int, grant_id: int, user_id: str) -> None: ...

    async def get_grant_alerts(
        self, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[Any], int]: ...

    async def get_grant_alert(self, alert_id: int) -> Any | None: ...

    async def create_grant_alert(
        self,
        grant_opportunity_id: int,
        relevance_score: float,
        relevance_reason: str | None = None,
        matched_keywords: list[str] | None = None,
    ) -> Any: ...

    async def update_grant_alert_status(self, alert_id: int, status: str) -> Any: ...

    async def count_grant_alerts(self, status: str | None = None) -> int: ...

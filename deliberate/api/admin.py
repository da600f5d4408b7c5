"""Admin endpoints - audit trail."""

from fastapi import APIRouter

from deliberate.api.deps import StorageDep
from deliberate.auth.middleware import AdminDep
from deliberate.schemas.decision import AuditLogOut

router = APIRouter()


@router.get("/audit-logs", response_model=list[AuditLogOut])
async def list_audit_logs(admin: AdminDep, storage: StorageDep):
    """Newest first. Judgment scores are never recorded here."""
    return await storage.get_audit_logs()

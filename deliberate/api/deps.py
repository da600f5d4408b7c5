"""Request-scoped collaborators.

External clients live on ``app.state`` (built in the lifespan); storage and
the orchestrators are assembled per request. Tests override these.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from deliberate.config import settings
from deliberate.database import get_db
from deliberate.services import documents
from deliberate.services.charity import CharityClient
from deliberate.services.coach import CoachSession
from deliberate.services.file_storage import FileStorage
from deliberate.services.lifecycle import DecisionLifecycle
from deliberate.services.llm import StreamingCompletion
from deliberate.storage.base import Storage
from deliberate.storage.repositories import SqlStorage


async def get_storage(db: Annotated[AsyncSession, Depends(get_db)]) -> Storage:
    return SqlStorage(db)


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage


def get_completions(request: Request) -> dict[str, StreamingCompletion]:
    return request.app.state.completions


def get_charity_client(request: Request) -> CharityClient | None:
    return request.app.state.charity


StorageDep = Annotated[Storage, Depends(get_storage)]
FileStorageDep = Annotated[FileStorage, Depends(get_file_storage)]
CompletionsDep = Annotated[dict[str, StreamingCompletion], Depends(get_completions)]
CharityDep = Annotated[CharityClient | None, Depends(get_charity_client)]


def get_lifecycle(storage: StorageDep, file_storage: FileStorageDep) -> DecisionLifecycle:
    return DecisionLifecycle(
        storage,
        noise_threshold=settings.noise_threshold,
        file_storage=file_storage,
        extractor=documents,
        max_extracted_chars=settings.max_extracted_chars,
    )


def get_coach(
    storage: StorageDep, completions: CompletionsDep, charity: CharityDep
) -> CoachSession:
    return CoachSession(
        storage,
        completions,
        charity=charity,
        default_provider=settings.default_provider,
        org_ein=settings.org_ein,
        noise_threshold=settings.noise_threshold,
        max_docs=settings.coach_max_docs,
        max_doc_chars=settings.coach_max_doc_chars,
        max_context_chars=settings.coach_max_context_chars,
        max_ein_lookups=settings.coach_max_ein_lookups,
    )


LifecycleDep = Annotated[DecisionLifecycle, Depends(get_lifecycle)]
CoachDep = Annotated[CoachSession, Depends(get_coach)]

"""AI coaching endpoints - provider list and the streamed chat."""

import asyncio
import json
import logging

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from deliberate.api.deps import CoachDep, CompletionsDep
from deliberate.auth.middleware import UserDep
from deliberate.schemas.coaching import CoachChatRequest, ProviderInfo

router = APIRouter()
logger = logging.getLogger(__name__)


def _sse(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


@router.get("/coaching/providers", response_model=list[ProviderInfo])
async def list_providers(user: UserDep, completions: CompletionsDep):
    return [
        ProviderInfo(id=provider_id, name=c.display_name, model=c.model)
        for provider_id, c in completions.items()
    ]


@router.post("/coaching/chat")
async def coaching_chat(body: CoachChatRequest, user: UserDep, coach: CoachDep):
    """
    Stream a coaching reply as server-sent events.

    Events are ``{"content": ...}`` chunks followed by ``{"done": true}``,
    or a single ``{"error": ...}``. When the client goes away the
    generator is closed, which sets the disconnect flag the session polls.
    """
    completion = coach.select_completion(body.provider)
    system_prompt = await coach.build_system_prompt(
        body.message,
        requesting_user_id=user.id,
        decision_id=body.decision_id,
        lookup_eins=body.lookup_eins,
    )

    async def events():
        disconnected = asyncio.Event()
        queue: asyncio.Queue[dict | None] = asyncio.Queue()
        task = asyncio.create_task(
            coach.stream_reply(
                completion,
                system_prompt,
                body.message,
                on_chunk=lambda content: queue.put_nowait({"content": content}),
                on_done=lambda: queue.put_nowait({"done": True}),
                on_error=lambda error: queue.put_nowait({"error": error}),
                should_abort=disconnected.is_set,
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield _sse(event)
        finally:
            disconnected.set()
            if not task.done():
                logger.info("Coaching stream closed by client")
                task.cancel()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )

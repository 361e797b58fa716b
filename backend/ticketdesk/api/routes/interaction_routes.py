from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import ValidationError

from ticketdesk.container import dispatcher, interaction_verifier
from ticketdesk.infrastructure.logging import bind_request_context, get_logger
from ticketdesk.models.schemas import InteractionPayload

router = APIRouter(tags=["interactions"])
logger = get_logger(__name__)


@router.post("/interactions")
async def receive_interaction(request: Request, background_tasks: BackgroundTasks) -> dict[str, object]:
    raw_body = await request.body()
    try:
        interaction_verifier.verify(
            raw_body=raw_body,
            signature_header=request.headers.get("x-signature-ed25519"),
            timestamp_header=request.headers.get("x-signature-timestamp"),
        )
    except ValueError as exc:
        logger.warning("interaction_signature_rejected", error=str(exc))
        raise HTTPException(status_code=401, detail="invalid request signature") from exc

    try:
        payload = InteractionPayload.model_validate_json(raw_body)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="malformed interaction payload") from exc

    event = payload.to_event()
    bind_request_context(interaction_id=event.id, interaction_kind=event.kind, user_id=event.user_id)
    ack = dispatcher.acknowledge(event)
    if ack.follow_up:
        background_tasks.add_task(dispatcher.complete, event)
    return ack.payload

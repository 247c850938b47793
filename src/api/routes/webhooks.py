"""Payment gateway callback routes."""

import logging

from fastapi import APIRouter, Request, Response

from src.api.deps import Reconciliation
from src.models.gateway import RawCallback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/{provider_id}",
    summary="Receive a payment gateway callback",
    description=(
        "Receives PayApp feedback (form-encoded) or Stripe webhooks (signed JSON). "
        "The response body and status follow each provider's acknowledgement contract."
    ),
    responses={
        200: {"description": "Callback acknowledged"},
        401: {"description": "Signature or token mismatch"},
        404: {"description": "Unknown payment provider"},
    },
)
async def receive_callback(provider_id: str, request: Request, service: Reconciliation) -> Response:
    """Hand a raw callback to the reconciliation engine.

    The body is read unparsed: Stripe signs the exact bytes it sent.

    Args:
        provider_id: Payment provider identifier.
        request: FastAPI request for the raw body and headers.
        service: Reconciliation orchestrator.

    Returns:
        Response: The provider-specific acknowledgement.
    """
    body = await request.body()
    raw = RawCallback(
        body=body,
        headers=dict(request.headers),
        content_type=request.headers.get("content-type", ""),
    )
    logger.info("Received %s callback (%d bytes)", provider_id, len(body))

    ack = await service.handle_callback(provider_id, raw)
    return Response(content=ack.body, status_code=ack.status_code, media_type=ack.media_type)

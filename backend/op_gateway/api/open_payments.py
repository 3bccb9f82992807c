"""
Open Payments API Endpoints

One endpoint per orchestrator operation, consumed by the mobile client.

Envelope:
- Success: {"ok": true, ...resource}
- Failure: {"ok": false, "error": {...}, "upstreamStatus"?} (see main.py handlers)

Flow (mobile client):
    POST /op/incoming -> POST /op/outgoing/start -> WebView consent
    -> GET /op/finish -> POST /op/outgoing/finish -> POST /op/outgoing/pay
"""
import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from ..config import settings
from ..logging_utils import mask
from ..models.payments import SettlementResult
from ..services.payment_orchestrator import PaymentOrchestrator
from .finish_page import render_finish_page

logger = logging.getLogger(__name__)

router = APIRouter()


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    """Orchestrator built once by the application lifespan."""
    return request.app.state.orchestrator


# ============================================================================
# Request Models
# ============================================================================

class CamelModel(BaseModel):
    model_config = {
        "populate_by_name": True,
        "extra": "ignore"
    }


class CreateIncomingRequest(CamelModel):
    """Amount owed in the payee's minor units (defaults to configuration)."""
    receive_value_minor: Optional[Union[str, int]] = Field(None, alias="receiveValueMinor")


class StartOutgoingRequest(CamelModel):
    incoming_payment_id: Optional[str] = Field(None, alias="incomingPaymentId")


class FinishOutgoingRequest(CamelModel):
    """Continuation handle from start-outgoing plus the interaction proof."""
    incoming_payment_id: Optional[str] = Field(None, alias="incomingPaymentId")
    continue_uri: Optional[str] = Field(None, alias="continueUri")
    continue_access_token: Optional[str] = Field(None, alias="continueAccessToken")
    interact_ref: Optional[str] = None
    hash: Optional[str] = None


class PayOutgoingRequest(CamelModel):
    incoming_payment_id: Optional[str] = Field(None, alias="incomingPaymentId")
    grant_access_token: Optional[str] = Field(None, alias="grantAccessToken")


class SettlementQueryRequest(CamelModel):
    outgoing_payment_id: Optional[str] = Field(None, alias="outgoingPaymentId")
    grant_access_token: Optional[str] = Field(None, alias="grantAccessToken")


def _settlement_response(result: SettlementResult) -> Dict[str, Any]:
    if result.outcome == "resolved":
        state = result.payment.state
    elif result.outcome == "unresolved":
        state = "processing"
    else:
        state = "unknown"
    return {
        "ok": True,
        "state": state,
        "outgoingPayment": result.payment.to_response() if result.payment else None,
        "settlement": result.to_response(),
    }


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/wallets")
async def wallets_endpoint(
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """
    Payer and payee wallet address documents.

    Example:
        GET /op/wallets
    """
    pair = await orchestrator.wallets()
    return {
        "ok": True,
        "senderWallet": pair.payer.to_response(),
        "receiverWallet": pair.payee.to_response(),
    }


@router.post("/incoming")
async def create_incoming_endpoint(
    request: CreateIncomingRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """
    Create the payee-side incoming payment for the amount owed.

    Request Body:
        {"receiveValueMinor": "1500"}

    Returns:
        {"ok": true, "incomingPayment": {...}}  # state always set
    """
    value = request.receive_value_minor
    logger.info(f"Creating incoming payment: receiveValueMinor={value}")
    payment = await orchestrator.create_incoming(str(value) if value is not None else None)
    return {"ok": True, "incomingPayment": payment.to_response()}


@router.post("/outgoing/start")
async def start_outgoing_endpoint(
    request: StartOutgoingRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """
    Request the interactive outgoing-payment grant.

    The caller must keep continueUri and continueAccessToken until the user
    returns from the redirect.
    """
    pending = await orchestrator.start_outgoing(request.incoming_payment_id or "")
    return {"ok": True, **pending.model_dump(by_alias=True)}


@router.get("/finish", response_class=HTMLResponse)
async def finish_page_endpoint(
    interact_ref: str = Query("", description="Interaction reference"),
    hash: str = Query("", description="Interaction hash")
) -> HTMLResponse:
    """Redirect target after consent; forwards the proof to the app."""
    logger.info(f"Finish page: ref={mask(interact_ref)} hash={mask(hash)}")
    return HTMLResponse(render_finish_page(interact_ref, hash))


@router.post("/outgoing/finish")
async def finish_outgoing_endpoint(
    request: FinishOutgoingRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """
    Continue the grant and return the outgoing-payment access token.

    Returns 400 if incomingPaymentId, continueUri, continueAccessToken or
    interact_ref is empty.
    """
    result = await orchestrator.finish_outgoing(
        request.incoming_payment_id or "",
        request.continue_uri or "",
        request.continue_access_token or "",
        request.interact_ref or "",
        request.hash,
    )
    return {
        "ok": True,
        "grantAccessToken": result.grant.access_token,
        "senderWalletId": result.payer_wallet_id,
    }


@router.post("/outgoing/pay")
async def pay_outgoing_endpoint(
    request: PayOutgoingRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """
    Create the outgoing payment and wait for settlement.

    Returns:
        {
            "ok": true,
            "outgoingPayment": {...},
            "settlement": {"outcome", "attempts", "rule"},
            "tier": "quoted" | "receiver-direct" | "minimal",
            "quote": {...} | null,
            "warnings": [...]
        }
    """
    session = await orchestrator.pay_outgoing(
        request.incoming_payment_id or "", request.grant_access_token or ""
    )
    return {"ok": True, **session.to_response()}


@router.get("/outgoing/status")
async def payment_status_endpoint(
    id: str = Query("", description="Outgoing payment id or URL"),
    access_token: Optional[str] = Query(None, alias="accessToken"),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Single-shot normalized status."""
    report = await orchestrator.payment_status(id, access_token)
    response: Dict[str, Any] = {
        "ok": True,
        "state": report.state,
        "outgoingPayment": report.payment.to_response(),
    }
    if settings.expose_diagnostics:
        response["diagnostic"] = report.diagnostic
    return response


@router.post("/outgoing/verify")
async def payment_verify_endpoint(
    request: SettlementQueryRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Re-check settlement (short poll). state is "unknown" when not found."""
    result = await orchestrator.payment_verify(
        request.outgoing_payment_id or "", request.grant_access_token or ""
    )
    return _settlement_response(result)


@router.post("/outgoing/await")
async def payment_await_endpoint(
    request: SettlementQueryRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Wait for settlement (long poll)."""
    result = await orchestrator.payment_await(
        request.outgoing_payment_id or "", request.grant_access_token or ""
    )
    return _settlement_response(result)


@router.get("/debug/incoming/{incoming_payment_id:path}")
async def debug_incoming_endpoint(
    incoming_payment_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Raw incoming payment plus a payability diagnostic."""
    payment, diagnostic = await orchestrator.debug_incoming(incoming_payment_id)
    return {
        "ok": True,
        "incomingPayment": payment.to_response(),
        "raw": payment.raw,
        "diagnostic": diagnostic,
    }

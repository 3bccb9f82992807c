"""
Payment Resource Models

Represents the resources exchanged with the Open Payments network during one
parking-fee transfer: incoming payment, grants, quote, outgoing payment, and
the settlement observations made after execution.

Normalization happens in the from_upstream constructors so that business
logic never sees an unset incoming payment state.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from dateutil import parser
from pydantic import BaseModel, Field

from .wallets import Amount


def _amount(data: Dict[str, Any], key: str) -> Optional[Amount]:
    value = data.get(key)
    if isinstance(value, dict) and "value" in value:
        return Amount.model_validate(value)
    return None


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return parser.isoparse(str(value))


# ============================================================================
# Incoming Payment (payee side)
# ============================================================================

class IncomingPayment(BaseModel):
    """
    Payee-side payment intent with a target amount and expiry.

    state is never unset: a response without one is normalized to "pending"
    and state_present records what the upstream actually sent.
    """
    id: str
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    incoming_amount: Optional[Amount] = Field(None, alias="incomingAmount")
    received_amount: Optional[Amount] = Field(None, alias="receivedAmount")
    state: str = "pending"
    state_present: bool = Field(True, alias="statePresent")
    completed: Optional[bool] = None
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    model_config = {
        "populate_by_name": True,
        "extra": "ignore"
    }

    @classmethod
    def from_upstream(cls, data: Dict[str, Any]) -> "IncomingPayment":
        raw_state = data.get("state")
        state = str(raw_state).lower() if raw_state else "pending"
        return cls(
            id=data["id"],
            wallet_address=data.get("walletAddress"),
            incoming_amount=_amount(data, "incomingAmount"),
            received_amount=_amount(data, "receivedAmount"),
            state=state,
            state_present=bool(raw_state),
            completed=data.get("completed"),
            expires_at=_timestamp(data.get("expiresAt")),
            metadata=data.get("metadata") or {},
            raw=data,
        )

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# Grants
# ============================================================================

class PendingGrant(BaseModel):
    """
    Interactive grant awaiting user consent.

    Single-use: it becomes a FinalizedGrant only through continuation.
    """
    redirect_url: str = Field(alias="redirectUrl")
    continuation_url: str = Field(alias="continueUri")
    continuation_token: str = Field(alias="continueAccessToken")
    finish_nonce: Optional[str] = Field(None, exclude=True)

    model_config = {
        "populate_by_name": True,
        "frozen": True
    }


class FinalizedGrant(BaseModel):
    """Grant with a usable access token."""
    access_token: str
    manage_url: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    model_config = {
        "frozen": True
    }

    @classmethod
    def from_upstream(cls, data: Dict[str, Any]) -> Optional["FinalizedGrant"]:
        """Return None when the response does not carry access_token.value."""
        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, dict) or not token.get("value"):
            return None
        return cls(access_token=token["value"], manage_url=token.get("manage"), raw=data)


# ============================================================================
# Quote
# ============================================================================

class Quote(BaseModel):
    """Advisory currency conversion tied to exactly one incoming payment."""
    id: str
    receiver: Optional[str] = None
    debit_amount: Optional[Amount] = Field(None, alias="debitAmount")
    receive_amount: Optional[Amount] = Field(None, alias="receiveAmount")
    fee: Optional[Amount] = None
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore"
    }

    @classmethod
    def from_upstream(cls, data: Dict[str, Any]) -> "Quote":
        return cls(
            id=data["id"],
            receiver=data.get("receiver"),
            debit_amount=_amount(data, "debitAmount"),
            receive_amount=_amount(data, "receiveAmount"),
            fee=_amount(data, "fee"),
            expires_at=_timestamp(data.get("expiresAt")),
        )

    def summary(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# Outgoing Payment (payer side)
# ============================================================================

class OutgoingPayment(BaseModel):
    """
    Payer-side transfer.

    state is None when the upstream omitted it; SettlementResolver refines it
    after creation.
    """
    id: str
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    receiver: Optional[str] = None
    quote_id: Optional[str] = Field(None, alias="quoteId")
    debit_amount: Optional[Amount] = Field(None, alias="debitAmount")
    sent_amount: Optional[Amount] = Field(None, alias="sentAmount")
    receive_amount: Optional[Amount] = Field(None, alias="receiveAmount")
    state: Optional[str] = None
    failed: Optional[bool] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    model_config = {
        "populate_by_name": True,
        "extra": "ignore"
    }

    @classmethod
    def from_upstream(cls, data: Dict[str, Any]) -> "OutgoingPayment":
        raw_state = data.get("state")
        return cls(
            id=data["id"],
            wallet_address=data.get("walletAddress"),
            receiver=data.get("receiver"),
            quote_id=data.get("quoteId"),
            debit_amount=_amount(data, "debitAmount"),
            sent_amount=_amount(data, "sentAmount"),
            receive_amount=_amount(data, "receiveAmount"),
            state=str(raw_state).lower() if raw_state else None,
            failed=data.get("failed"),
            raw=data,
        )

    def with_state(self, state: str) -> "OutgoingPayment":
        return self.model_copy(update={"state": state})

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# Settlement observations
# ============================================================================

SettlementOutcome = Literal["resolved", "not_found", "unresolved"]


class SettlementResult(BaseModel):
    """
    Result of polling an outgoing payment.

    - resolved: payment.state was reported or inferred
    - not_found: upstream answered 404; polling stopped
    - unresolved: attempts exhausted or a read failed; report as "processing"
    """
    outcome: SettlementOutcome
    payment: Optional[OutgoingPayment] = None
    attempts: int = 0
    rule: Optional[str] = None
    upstream_status: Optional[int] = None

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {"outcome": self.outcome, "attempts": self.attempts, "rule": self.rule}
        if self.upstream_status is not None:
            response["upstreamStatus"] = self.upstream_status
        return response


class StatusReport(BaseModel):
    """Single-shot status with the inference diagnostic."""
    payment: OutgoingPayment
    state: str
    diagnostic: Dict[str, Any]


class CompletionWarning(BaseModel):
    """Payee-side completion failed after a successful transfer."""
    code: str = "op:incoming:completion_failed"
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Payment Session
# ============================================================================

class PaymentSession(BaseModel):
    """
    One end-to-end parking-fee transfer as seen after pay-outgoing.

    Discarded once returned: the gateway holds no session store.
    """
    incoming_payment_id: str
    outgoing_payment: OutgoingPayment
    settlement: SettlementResult
    tier: str
    quote: Optional[Quote] = None
    completed_incoming: Optional[IncomingPayment] = None
    warnings: List[CompletionWarning] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "incomingPaymentId": self.incoming_payment_id,
            "outgoingPayment": self.outgoing_payment.to_response(),
            "settlement": self.settlement.to_response(),
            "tier": self.tier,
            "quote": self.quote.summary() if self.quote else None,
            "warnings": [w.model_dump() for w in self.warnings],
        }

"""
Open Payments Gateway Exception Hierarchy

Error codes for every failure the payment core can surface to the mobile client.
All errors use the op: prefix and carry the upstream HTTP status when one exists,
so callers can tell retryable network faults from business-state rejections.
"""
from typing import Optional, Dict, Any


class OpenPaymentsError(Exception):
    """
    Base exception for all gateway errors.

    status_code is the HTTP status rendered to the caller. When the failure
    originated upstream it is the upstream status (passthrough).
    """

    default_status_code = 500

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.status_code = status_code or self.default_status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(OpenPaymentsError):
    """
    Wallet or key material missing or unreadable at startup.

    Fatal: the process must not start.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("op:config:invalid", message, details)


class UpstreamRequestError(OpenPaymentsError):
    """
    A single upstream call answered with a non-2xx status or could not be sent.

    Carries the raw upstream status and body. Fallback chains catch this
    and only escalate a more specific error once they are exhausted.
    """

    default_status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        body: Any = None,
        url: Optional[str] = None
    ):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            "op:upstream:request_failed",
            message,
            {"upstream_status": upstream_status, "body": body, "url": url},
            status_code=upstream_status if upstream_status and upstream_status >= 400 else None,
        )


class UpstreamUnavailableError(OpenPaymentsError):
    """
    Wallet address document could not be fetched.

    Surfaced to the caller, never retried at this layer.
    """

    default_status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("op:wallet:unavailable", message, details)


class GrantNegotiationFailedError(OpenPaymentsError):
    """
    Grant request failed or the response lacked required fields.

    Examples:
    - Interactive grant without redirect URL, continue URI or continue token
    - Non-interactive grant that came back pending instead of finalized
    """

    default_status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__("op:grant:negotiation_failed", message, details, status_code)


class GrantContinuationFailedError(OpenPaymentsError):
    """
    Every continuation strategy was rejected.

    details["attempts"] lists each strategy and its failure; status_code is
    the last upstream status.
    """

    default_status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__("op:grant:continuation_failed", message, details, status_code)


class PaymentNotPayableError(OpenPaymentsError):
    """
    Incoming payment is no longer payable (already paid or expired).

    User-actionable. Callers must not retry.
    """

    default_status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("op:incoming:not_payable", message, details)


class OutgoingPaymentFailedError(OpenPaymentsError):
    """All outgoing payment tiers failed for reasons other than payability."""

    default_status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__("op:outgoing:failed", message, details, status_code)


class OutgoingPaymentNotFoundError(OpenPaymentsError):
    """Outgoing payment resource returned 404 on a single-shot status read."""

    default_status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("op:outgoing:not_found", message, details)


class IncomingCompletionError(OpenPaymentsError):
    """
    Payee-side completion failed.

    Never rendered directly: the executor turns it into a CompletionWarning
    because the transfer it follows has already been created.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__("op:incoming:completion_failed", message, details, status_code)

"""
Grant Continuation

Resumes a pending outgoing-payment grant after the user approved it and
returns the finalized access token.

Authorization servers disagree on the transport encoding of the interaction
hash and on the content type they accept for continuation, so continuation
runs a fixed, ordered chain of strategies and stops at the first success:

With a hash:
1. standard client, hash as received
2. standard client, hash re-encoded as base64url
3. raw GNAP request, hash as received
4. raw GNAP request, hash re-encoded as base64url

Without a hash:
1. standard client
2. raw GNAP request

A raw request that is rejected with 400/406/415 is repeated once with
application/json inside the same step. No step is ever added beyond these.
"""
import logging
from functools import partial
from typing import Any, Dict, List, Optional

from ..exceptions import GrantContinuationFailedError, UpstreamRequestError
from ..logging_utils import mask
from ..models.payments import FinalizedGrant
from .fallback import StrategiesExhausted, Strategy, run_strategies
from .open_payments_client import GNAP_MEDIA_TYPE, JSON_MEDIA_TYPE, OpenPaymentsClient

logger = logging.getLogger(__name__)

# Statuses that mean "wrong content type", not "wrong grant"
CONTENT_NEGOTIATION_STATUSES = frozenset({400, 406, 415})


def to_base64url(value: str) -> str:
    """Re-encode standard base64 as unpadded base64url."""
    return value.replace("+", "-").replace("/", "_").rstrip("=")


def interaction_body(interaction_ref: str, interaction_hash: Optional[str] = None) -> Dict[str, Any]:
    body = {"interact_ref": interaction_ref}
    if interaction_hash:
        body["hash"] = interaction_hash
    return body


class GrantContinuation:
    """Runs the continuation chain with the payer's authenticated client."""

    def __init__(self, client: OpenPaymentsClient):
        self.client = client

    async def _standard(self, continuation_url: str, continuation_token: str, body: Dict[str, Any]) -> Any:
        return await self.client.continue_grant(continuation_url, continuation_token, body)

    async def _raw(self, continuation_url: str, continuation_token: str, body: Dict[str, Any]) -> Any:
        try:
            return await self.client.continue_grant_raw(
                continuation_url, continuation_token, body, media_type=GNAP_MEDIA_TYPE
            )
        except UpstreamRequestError as e:
            if e.upstream_status not in CONTENT_NEGOTIATION_STATUSES:
                raise
            logger.info(f"Raw continuation rejected with {e.upstream_status}; retrying as {JSON_MEDIA_TYPE}")
            return await self.client.continue_grant_raw(
                continuation_url, continuation_token, body, media_type=JSON_MEDIA_TYPE
            )

    def build_strategies(
        self,
        continuation_url: str,
        continuation_token: str,
        interaction_ref: str,
        interaction_hash: Optional[str] = None
    ) -> List[Strategy]:
        """Return the ordered strategy list for this interaction proof."""
        if not interaction_hash:
            body = interaction_body(interaction_ref)
            return [
                Strategy("standard", partial(self._standard, continuation_url, continuation_token, body)),
                Strategy("raw", partial(self._raw, continuation_url, continuation_token, body)),
            ]

        as_received = interaction_body(interaction_ref, interaction_hash)
        url_safe = interaction_body(interaction_ref, to_base64url(interaction_hash))
        return [
            Strategy("standard", partial(self._standard, continuation_url, continuation_token, as_received)),
            Strategy("standard-base64url", partial(self._standard, continuation_url, continuation_token, url_safe)),
            Strategy("raw", partial(self._raw, continuation_url, continuation_token, as_received)),
            Strategy("raw-base64url", partial(self._raw, continuation_url, continuation_token, url_safe)),
        ]

    async def continue_grant(
        self,
        continuation_url: str,
        continuation_token: str,
        interaction_ref: str,
        interaction_hash: Optional[str] = None
    ) -> FinalizedGrant:
        """
        Continue a pending grant and return its access token.

        The first strategy the server accepts consumes the grant, so an
        accepted response without an access token is final and is not retried.

        Raises:
            GrantContinuationFailedError: Every strategy failed, or the
                accepted response carried no access token
        """
        logger.info(
            f"Continuing grant: ref={mask(interaction_ref)} hash={mask(interaction_hash)} "
            f"token={mask(continuation_token)}"
        )
        strategies = self.build_strategies(
            continuation_url, continuation_token, interaction_ref, interaction_hash
        )

        try:
            outcome = await run_strategies("grant continuation", strategies)
        except StrategiesExhausted as e:
            last = e.last
            raise GrantContinuationFailedError(
                f"Grant continuation failed after {len(e.failures)} attempts: {last.message}",
                details={
                    "attempts": e.attempts(),
                    "upstream_status": last.status,
                    "body": last.body,
                },
                status_code=last.status,
            )

        grant = FinalizedGrant.from_upstream(outcome.result)
        if grant is None:
            logger.error(f"Continuation via {outcome.name} returned no access token")
            raise GrantContinuationFailedError(
                "Outgoing grant was not finalized",
                details={"strategy": outcome.name, "body": outcome.result}
            )

        logger.info(f"Grant finalized via {outcome.name}: token={mask(grant.access_token)}")
        return grant

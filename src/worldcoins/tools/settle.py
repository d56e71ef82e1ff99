"""verify-and-mint and verify-and-claim handlers shared by the HTTP and MCP surfaces."""

import logging
from typing import Any

from worldcoins.errors import ConfigurationError, ErrorKind, LedgerDecodeError, RpcUnavailable
from worldcoins.ledger.base import LedgerClient
from worldcoins.settlement.models import ActionKind, Outcome, SettlementResult
from worldcoins.settlement.orchestrator import SettlementOrchestrator

logger = logging.getLogger(__name__)

# internal field path -> request body field
CREATE_FIELDS = {
    "principal": "userAddress",
    "proof": "payload",
    "params": "tokenParams",
}
CLAIM_FIELDS = {
    "principal": "userAddress",
    "proof": "payload",
    "params.token_address": "tokenAddress",
    "params": "tokenAddress",
}


def _action_payload(body: dict, params: Any) -> dict:
    return {
        "principal": body.get("userAddress"),
        "proof": body.get("payload"),
        "action": body.get("action"),
        "signal": body.get("signal"),
        "params": params,
    }


def result_to_response(result: SettlementResult) -> dict:
    """Render a settlement result in the request body's vocabulary."""
    response: dict[str, Any] = {
        "status": result.status_code,
        "success": result.outcome == Outcome.CONFIRMED,
        "state": result.state.value,
    }
    if result.principal:
        response["userAddress"] = result.principal
    if result.kind == ActionKind.CREATE_TOKEN.value and result.params:
        response["tokenParams"] = result.params
    elif result.params:
        response["tokenAddress"] = result.params.get("token_address")
    if result.tx_hash:
        response["transactionHash"] = result.tx_hash
    if result.block_number is not None:
        response["blockNumber"] = result.block_number

    if result.outcome == Outcome.CONFIRMED:
        if result.claim_amount is not None:
            response["claimAmount"] = result.claim_amount
    else:
        response["error"] = result.reason
        response["errorKind"] = result.error_kind.value if result.error_kind else None
        if result.guard is not None and result.guard.violation is not None:
            response["violation"] = result.guard.violation.value
        if result.reconciliation is not None:
            response["reconciliation"] = result.reconciliation.model_dump(mode="json")

    if result.verification is not None:
        response["verifyRes"] = result.verification.model_dump(mode="json")
    return response


def configuration_error_response(error: ConfigurationError) -> dict:
    """The response for a service that cannot settle anything until it is configured."""
    return {
        "status": 500,
        "success": False,
        "error": str(error),
        "errorKind": ErrorKind.CONFIGURATION.value,
    }


def _not_an_object() -> dict:
    return {
        "status": 400,
        "success": False,
        "error": "Request body must be a JSON object",
        "errorKind": ErrorKind.BAD_REQUEST.value,
    }


async def handle_create_token(
    body: Any,
    *,
    orchestrator: SettlementOrchestrator,
    ledger: LedgerClient,
) -> dict:
    """Verify a World ID proof and create the caller's token."""
    if not isinstance(body, dict):
        return _not_an_object()
    result = await orchestrator.settle_payload(
        ActionKind.CREATE_TOKEN.value,
        _action_payload(body, body.get("tokenParams")),
        CREATE_FIELDS,
    )
    response = result_to_response(result)
    if result.outcome == Outcome.CONFIRMED and result.principal:
        try:
            response["tokenAddress"] = await ledger.get_token_by_creator(result.principal)
        except (RpcUnavailable, LedgerDecodeError) as e:
            logger.warning(
                "Token created in %s but its address could not be read: %s", result.tx_hash, e
            )
    return response


async def handle_claim_token(
    body: Any,
    *,
    orchestrator: SettlementOrchestrator,
) -> dict:
    """Verify a World ID proof and claim the fixed amount of a token."""
    if not isinstance(body, dict):
        return _not_an_object()
    token_address = body.get("tokenAddress")
    result = await orchestrator.settle_payload(
        ActionKind.CLAIM_TOKEN.value,
        _action_payload(body, {"token_address": token_address}),
        CLAIM_FIELDS,
    )
    return result_to_response(result)

"""Read-only token directory: every token, a user's tokens, a creator's token."""

import asyncio
import logging
from typing import Any

from worldcoins.errors import ErrorKind, LedgerDecodeError, RpcUnavailable
from worldcoins.ledger.base import ClaimStats, LedgerClient, TokenDetails, checksum

logger = logging.getLogger(__name__)


def token_to_dict(details: TokenDetails, stats: ClaimStats) -> dict:
    # amounts are base units as decimal strings; they overflow JSON numbers
    return {
        "address": details.address,
        "name": details.name,
        "symbol": details.symbol,
        "totalSupply": str(details.total_supply),
        "maxSupply": str(details.max_supply),
        "claimAmount": str(details.claim_amount),
        "creator": details.creator,
        "description": details.description,
        "claimStats": {
            "claimers": str(stats.claimers),
            "totalClaimed": str(stats.total_claimed),
            "availableSupply": str(stats.available_supply),
        },
    }


def _error(status: int, kind: ErrorKind, message: str) -> dict:
    return {"status": status, "success": False, "error": message, "errorKind": kind.value}


async def _describe(ledger: LedgerClient, token: str) -> dict | None:
    """Details and claim stats for one token, or None if they cannot be read."""
    try:
        details, stats = await asyncio.gather(
            ledger.get_token_details(token), ledger.get_claim_stats(token)
        )
    except (RpcUnavailable, LedgerDecodeError) as e:
        logger.warning("Skipping token %s: %s", token, e)
        return None
    return token_to_dict(details, stats)


async def handle_list_tokens(*, ledger: LedgerClient) -> dict:
    """Every token the factory has created, with details and claim stats."""
    try:
        tokens = await ledger.get_all_tokens()
    except (RpcUnavailable, LedgerDecodeError) as e:
        return _error(503, ErrorKind.INFRASTRUCTURE_UNAVAILABLE, f"Failed to fetch tokens: {e}")

    described = await asyncio.gather(*(_describe(ledger, t) for t in tokens))
    data = [d for d in described if d is not None]
    return {"status": 200, "success": True, "data": data, "count": len(data)}


async def handle_user_tokens(user_address: str, *, ledger: LedgerClient) -> dict:
    """Tokens the user has claimed from or created, with their balance of each."""
    try:
        user = checksum(user_address)
    except ValueError as e:
        return _error(400, ErrorKind.BAD_REQUEST, str(e))

    try:
        tokens, created = await asyncio.gather(
            ledger.get_all_tokens(), ledger.get_token_by_creator(user)
        )
    except (RpcUnavailable, LedgerDecodeError) as e:
        return _error(
            503, ErrorKind.INFRASTRUCTURE_UNAVAILABLE, f"Failed to fetch user tokens: {e}"
        )

    async def _for_user(token: str) -> dict | None:
        try:
            claimed = await ledger.has_user_claimed(user, token)
            is_creator = token == created
            if not (claimed or is_creator):
                return None
            entry = await _describe(ledger, token)
            if entry is None:
                return None
            entry["userBalance"] = str(await ledger.get_token_balance(token, user))
        except (RpcUnavailable, LedgerDecodeError) as e:
            logger.warning("Skipping token %s for %s: %s", token, user, e)
            return None
        entry["userHasClaimed"] = claimed
        entry["userIsCreator"] = is_creator
        return entry

    found = await asyncio.gather(*(_for_user(t) for t in tokens))
    user_tokens = [t for t in found if t is not None]
    return {"status": 200, "success": True, "tokens": user_tokens, "count": len(user_tokens)}


async def handle_creator_token(creator_address: str, *, ledger: LedgerClient) -> dict:
    """The single token created by an address, or token=None."""
    try:
        creator = checksum(creator_address)
    except ValueError as e:
        return _error(400, ErrorKind.BAD_REQUEST, str(e))

    try:
        token = await ledger.get_token_by_creator(creator)
        if token is None:
            return {
                "status": 200,
                "success": True,
                "token": None,
                "message": "No token created by this address",
            }
        details, stats = await asyncio.gather(
            ledger.get_token_details(token), ledger.get_claim_stats(token)
        )
    except (RpcUnavailable, LedgerDecodeError) as e:
        return _error(
            503,
            ErrorKind.INFRASTRUCTURE_UNAVAILABLE,
            f"Failed to fetch token by creator {creator}: {e}",
        )
    return {"status": 200, "success": True, "token": token_to_dict(details, stats)}


async def handle_tokens_query(body: Any, *, ledger: LedgerClient) -> dict:
    """Dispatch a token query on userAddress, then creatorAddress, else list everything."""
    if body is not None and not isinstance(body, dict):
        return _error(400, ErrorKind.BAD_REQUEST, "Request body must be a JSON object")
    body = body or {}
    if body.get("userAddress"):
        return await handle_user_tokens(body["userAddress"], ledger=ledger)
    if body.get("creatorAddress"):
        return await handle_creator_token(body["creatorAddress"], ledger=ledger)
    return await handle_list_tokens(ledger=ledger)

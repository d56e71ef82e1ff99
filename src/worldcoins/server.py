"""MCP server setup and tool registration."""

from mcp.server.fastmcp import FastMCP

from worldcoins.errors import ConfigurationError
from worldcoins.services import get_services
from worldcoins.tools.audit_view import handle_get_recent_actions
from worldcoins.tools.settle import (
    configuration_error_response,
    handle_claim_token,
    handle_create_token,
)
from worldcoins.tools.tokens import handle_tokens_query

mcp = FastMCP("worldcoins")


@mcp.tool()
async def create_token(
    user_address: str,
    payload: dict,
    action: str,
    name: str,
    symbol: str,
    description: str = "",
    signal: str | None = None,
) -> dict:
    """Verify a World ID proof and create a token for the user. One token per person.

    Args:
        user_address: Address that becomes the token's creator
        payload: World ID proof (proof, merkle_root, nullifier_hash, verification_level)
        action: World ID action the proof was generated for
        name: Token name
        symbol: Token symbol
        description: Optional token description
        signal: Signal the proof was bound to, if any
    """
    try:
        svc = get_services()
    except ConfigurationError as e:
        return configuration_error_response(e)
    body = {
        "userAddress": user_address,
        "payload": payload,
        "action": action,
        "signal": signal,
        "tokenParams": {"name": name, "symbol": symbol, "description": description},
    }
    return await handle_create_token(body, orchestrator=svc.orchestrator, ledger=svc.ledger)


@mcp.tool()
async def claim_token(
    user_address: str,
    token_address: str,
    payload: dict,
    action: str,
    signal: str | None = None,
) -> dict:
    """Verify a World ID proof and claim 50 units of a token. Once per person per token.

    Args:
        user_address: Address that receives the claimed tokens
        token_address: Token to claim from
        payload: World ID proof (proof, merkle_root, nullifier_hash, verification_level)
        action: World ID action the proof was generated for
        signal: Signal the proof was bound to, if any
    """
    try:
        svc = get_services()
    except ConfigurationError as e:
        return configuration_error_response(e)
    body = {
        "userAddress": user_address,
        "tokenAddress": token_address,
        "payload": payload,
        "action": action,
        "signal": signal,
    }
    return await handle_claim_token(body, orchestrator=svc.orchestrator)


@mcp.tool()
async def list_tokens(
    user_address: str | None = None, creator_address: str | None = None
) -> dict:
    """List tokens: all of them, those a user holds or created, or one creator's token.

    Args:
        user_address: Only tokens this address claimed from or created
        creator_address: Only the token created by this address
    """
    try:
        svc = get_services()
    except ConfigurationError as e:
        return configuration_error_response(e)
    body = {"userAddress": user_address, "creatorAddress": creator_address}
    return await handle_tokens_query(body, ledger=svc.ledger)


@mcp.tool()
async def get_audit_log(n: int = 10) -> list[dict] | dict:
    """Get recent settlement audit entries.

    Args:
        n: Number of recent entries to return (default: 10)
    """
    try:
        svc = get_services()
    except ConfigurationError as e:
        return configuration_error_response(e)
    return handle_get_recent_actions(audit_logger=svc.audit_logger, n=n)

"""Minimal ABIs for the token factory and the ERC-20 tokens it deploys.

The operator relays every write, so the factory must expose the relayed
variants `createToken(address creator, TokenParams params)` and
`claimTokens(address user, address tokenAddress)` rather than the
msg.sender-scoped `createToken(params)` and `claimTokens(tokenAddress)`.
"""


def _fn(name: str, inputs: list[dict], outputs: list[dict], mutability: str = "view") -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


def _arg(name: str, type_: str, components: list[dict] | None = None) -> dict:
    arg = {"name": name, "type": type_, "internalType": type_}
    if components is not None:
        arg["components"] = components
        arg["internalType"] = "struct WorldCoinsFactory.TokenParams"
    return arg


TOKEN_PARAMS = [
    _arg("name", "string"),
    _arg("symbol", "string"),
    _arg("description", "string"),
]

# Write functions take the beneficiary explicitly: the operator key is always
# msg.sender, so the factory must be told whose entitlement is being consumed.
FACTORY_ABI = [
    _fn(
        "createToken",
        [_arg("creator", "address"), _arg("params", "tuple", TOKEN_PARAMS)],
        [_arg("tokenAddress", "address")],
        "nonpayable",
    ),
    _fn(
        "claimTokens",
        [_arg("user", "address"), _arg("tokenAddress", "address")],
        [],
        "nonpayable",
    ),
    _fn("isValidToken", [_arg("tokenAddress", "address")], [_arg("", "bool")]),
    _fn(
        "hasUserClaimed",
        [_arg("user", "address"), _arg("tokenAddress", "address")],
        [_arg("", "bool")],
    ),
    _fn("hasCreatedToken", [_arg("", "address")], [_arg("", "bool")]),
    _fn("getTokenByCreator", [_arg("creator", "address")], [_arg("", "address")]),
    _fn("getAllTokens", [], [_arg("", "address[]")]),
    _fn(
        "getTokenDetails",
        [_arg("tokenAddress", "address")],
        [
            _arg("name", "string"),
            _arg("symbol", "string"),
            _arg("totalSupply", "uint256"),
            _arg("maxSupply", "uint256"),
            _arg("claimAmount", "uint256"),
            _arg("creator", "address"),
            _arg("description", "string"),
        ],
    ),
    _fn(
        "getClaimStats",
        [_arg("tokenAddress", "address")],
        [
            _arg("claimers", "uint256"),
            _arg("totalClaimed", "uint256"),
            _arg("availableSupply", "uint256"),
        ],
    ),
]

ERC20_ABI = [
    _fn("balanceOf", [_arg("account", "address")], [_arg("", "uint256")]),
]

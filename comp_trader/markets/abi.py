"""Minimal ABIs for the competition, its periphery, ERC20 tokens and the V2 router."""


def _fn(name, inputs, outputs, mutability="view"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


COMPETITION_ABI = [
    _fn("USDM", [], [("", "address")]),
    _fn("currentToken", [], [("", "address")]),
    _fn("endRound", [], [], "nonpayable"),
]

PERIPHERY_ABI = [
    _fn(
        "mmInfo",
        [("account", "address"), ("competition", "address")],
        [
            ("token", "address"),
            ("usdmBalance", "uint256"),
            ("tokenBalance", "uint256"),
            ("usdmLP", "uint256"),
            ("tokenLP", "uint256"),
        ],
    ),
]

ERC20_ABI = [
    _fn("balanceOf", [("owner", "address")], [("", "uint256")]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")], "nonpayable"),
    _fn("symbol", [], [("", "string")]),
]

ROUTER_ABI = [
    _fn("factory", [], [("", "address")]),
    _fn("getAmountsOut", [("amountIn", "uint256"), ("path", "address[]")], [("amounts", "uint256[]")]),
    _fn(
        "swapExactTokensForTokens",
        [
            ("amountIn", "uint256"),
            ("amountOutMin", "uint256"),
            ("path", "address[]"),
            ("to", "address"),
            ("deadline", "uint256"),
        ],
        [("amounts", "uint256[]")],
        "nonpayable",
    ),
]

FACTORY_ABI = [
    _fn("getPair", [("tokenA", "address"), ("tokenB", "address")], [("pair", "address")]),
]

PAIR_ABI = [
    _fn("token0", [], [("", "address")]),
    _fn(
        "getReserves",
        [],
        [("reserve0", "uint112"), ("reserve1", "uint112"), ("blockTimestampLast", "uint32")],
    ),
]

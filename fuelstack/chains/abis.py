"""
Contract ABIs of the gate contracts and the ERC20 subset the solver uses.
"""

from eth_utils import keccak

ORDER_OPENED_SIGNATURE = (
    "OrderOpened(uint256,address,address,uint256,address,uint256,string,uint256,uint256)"
)
ORDER_FILLED_SIGNATURE = (
    "OrderFilled(uint256,address,address,uint256,address,address,uint256,uint256)"
)

ORDER_OPENED_TOPIC = keccak(text=ORDER_OPENED_SIGNATURE)
ORDER_FILLED_TOPIC = keccak(text=ORDER_FILLED_SIGNATURE)

# Non-indexed fields, in log data order
ORDER_OPENED_DATA_TYPES = ["uint256", "address", "uint256", "string", "uint256", "uint256"]
ORDER_FILLED_DATA_TYPES = ["address", "uint256", "address", "address", "uint256", "uint256"]


def _fn(name, inputs, outputs=(), mutability="view"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


OPEN_GATE_ABI = [
    _fn(
        "open",
        [
            ("tokenIn", "address"), ("amountIn", "uint256"), ("tokenOut", "address"),
            ("amountOut", "uint256"), ("recipient", "string"), ("fillDeadline", "uint256"),
        ],
        [("orderId", "uint256")],
        mutability="payable",
    ),
    _fn("settle", [("orderId", "uint256"), ("solverRecipient", "address")], mutability="nonpayable"),
    _fn(
        "orders",
        [("orderId", "uint256")],
        [
            ("sender", "address"), ("tokenIn", "address"), ("amountIn", "uint256"),
            ("tokenOut", "address"), ("amountOut", "uint256"), ("recipient", "string"),
            ("fillDeadline", "uint256"), ("sourceChainId", "uint256"),
        ],
    ),
    _fn("orderStatus", [("orderId", "uint256")], [("", "bytes32")]),
    {
        "type": "event",
        "name": "OrderOpened",
        "anonymous": False,
        "inputs": [
            {"name": "orderId", "type": "uint256", "indexed": True},
            {"name": "sender", "type": "address", "indexed": True},
            {"name": "tokenIn", "type": "address", "indexed": True},
            {"name": "amountIn", "type": "uint256", "indexed": False},
            {"name": "tokenOut", "type": "address", "indexed": False},
            {"name": "amountOut", "type": "uint256", "indexed": False},
            {"name": "recipient", "type": "string", "indexed": False},
            {"name": "fillDeadline", "type": "uint256", "indexed": False},
            {"name": "sourceChainId", "type": "uint256", "indexed": False},
        ],
    },
]

FILL_GATE_ABI = [
    _fn(
        "fill",
        [
            ("orderId", "uint256"), ("tokenOut", "address"), ("amountOut", "uint256"),
            ("recipient", "address"), ("solverOriginAddress", "address"),
            ("fillDeadline", "uint256"), ("sourceChainId", "uint256"),
        ],
        mutability="payable",
    ),
    _fn("orderStatus", [("orderId", "uint256")], [("", "bytes32")]),
    {
        "type": "event",
        "name": "OrderFilled",
        "anonymous": False,
        "inputs": [
            {"name": "orderId", "type": "uint256", "indexed": True},
            {"name": "solver", "type": "address", "indexed": True},
            {"name": "tokenOut", "type": "address", "indexed": False},
            {"name": "amountOut", "type": "uint256", "indexed": False},
            {"name": "recipient", "type": "address", "indexed": False},
            {"name": "solverOriginAddress", "type": "address", "indexed": False},
            {"name": "fillDeadline", "type": "uint256", "indexed": False},
            {"name": "sourceChainId", "type": "uint256", "indexed": False},
        ],
    },
]

ERC20_ABI = [
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")], mutability="nonpayable"),
    _fn("balanceOf", [("account", "address")], [("", "uint256")]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _fn("decimals", [], [("", "uint8")]),
    _fn("symbol", [], [("", "string")]),
]

"""
Minimal read-only ABI fragments.

Only the view functions the resolution core calls. The full contract ABIs are
owned by the contracts repository.
"""


def _view(name, inputs, outputs):
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": outputs,
    }


def _out(*types):
    return [{"name": "", "type": t} for t in types]


_RANKED_TUPLE = [
    {
        "name": "",
        "type": "tuple[]",
        "components": [
            {"name": "evermarkId", "type": "uint256"},
            {"name": "votes", "type": "uint256"},
            {"name": "rank", "type": "uint256"},
        ],
    }
]


EVERMARK_NFT_ABI = [
    _view("exists", [("tokenId", "uint256")], _out("bool")),
    _view("totalSupply", [], _out("uint256")),
    _view(
        "evermarkData",
        [("tokenId", "uint256")],
        [
            {"name": "title", "type": "string"},
            {"name": "creator", "type": "string"},
            {"name": "metadataURI", "type": "string"},
            {"name": "creationTime", "type": "uint256"},
            {"name": "minter", "type": "address"},
            {"name": "referrer", "type": "address"},
        ],
    ),
]

EVERMARK_VOTING_ABI = [
    _view("getCurrentCycle", [], _out("uint256")),
    _view(
        "getCycleInfo",
        [("cycle", "uint256")],
        [
            {"name": "startTime", "type": "uint256"},
            {"name": "endTime", "type": "uint256"},
            {"name": "totalVotes", "type": "uint256"},
            {"name": "totalDelegations", "type": "uint256"},
            {"name": "finalized", "type": "bool"},
            {"name": "activeEvermarksCount", "type": "uint256"},
        ],
    ),
    _view("getActiveEvermarksInCycle", [("cycle", "uint256")], _out("uint256[]")),
    _view(
        "getEvermarkVotesInCycle",
        [("cycle", "uint256"), ("evermarkId", "uint256")],
        _out("uint256"),
    ),
    _view(
        "getTopEvermarksInCycle",
        [("cycle", "uint256"), ("limit", "uint256")],
        _RANKED_TUPLE,
    ),
]

EVERMARK_LEADERBOARD_ABI = [
    _view(
        "getLeaderboard",
        [("cycle", "uint256"), ("startRank", "uint256"), ("count", "uint256")],
        _RANKED_TUPLE,
    ),
]

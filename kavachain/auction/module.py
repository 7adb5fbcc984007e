"""Message handling, queries, genesis and block hooks of the auction module."""

from __future__ import annotations

import json
from typing import Iterable, List, Sequence

from kavachain.auction.auctions import BaseAuction
from kavachain.auction.keeper import AuctionKeeper
from kavachain.auction.msg import MsgPlaceBid
from kavachain.ledger import UnknownRequestError

MODULE_NAME = "auction"
QUERY_GET_AUCTION = "getauctions"


def format_auctions(auctions: Iterable[BaseAuction]) -> str:
    """Render auctions one after another, separated by newlines."""
    return "\n".join(str(auction) for auction in auctions)


class AuctionModule:
    """Routes messages and queries to an auction keeper and runs its block hooks."""

    name = MODULE_NAME
    route = MODULE_NAME
    querier_route = MODULE_NAME

    def __init__(self, keeper: AuctionKeeper) -> None:
        self.keeper = keeper

    def handle(self, height: int, msg: object) -> None:
        """Apply a message at block ``height``."""
        if not isinstance(msg, MsgPlaceBid):
            raise UnknownRequestError(
                f"Unrecognized auction msg type: {type(msg).__name__}"
            )
        msg.validate_basic()
        self.keeper.place_bid(height, msg.auction_id, msg.bidder, msg.bid, msg.lot)

    def query(self, path: Sequence[str]) -> bytes:
        """Answer a query; ``getauctions`` returns every auction as indented JSON text."""
        if not path or path[0] != QUERY_GET_AUCTION:
            raise UnknownRequestError("unknown auction query endpoint")
        listing: List[str] = [str(auction) for auction in self.keeper.auctions()]
        return json.dumps(listing, indent=2).encode()

    def end_block(self, height: int) -> List[int]:
        """Close expired auctions; return the ids closed."""
        return self.keeper.end_blocker(height)

    def default_genesis(self) -> str:
        """Return the module's default genesis document."""
        return json.dumps({})

    def validate_genesis(self, raw: str) -> None:
        """Check that the genesis document is a JSON object; the module keeps no state."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid auction genesis: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("auction genesis must be a JSON object")

    def export_genesis(self) -> str:
        """Return the module's genesis document for the current state."""
        return json.dumps({})
"""The message used to place a bid on an auction."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List

from kavachain.auction.auctions import AuctionError
from kavachain.ledger import Coin

ROUTE = "auction"
MSG_PLACE_BID_TYPE = "auction/MsgPlaceBid"


def _coin_json(coin: Coin) -> dict:
    return {"denom": coin.denom, "amount": str(coin.amount)}


@dataclass(frozen=True)
class MsgPlaceBid:
    """A bid on any kind of auction; the bidder may raise the bid or lower the lot."""

    auction_id: int
    bidder: str
    bid: Coin
    lot: Coin

    def route(self) -> str:
        """Return the module the message is routed to."""
        return ROUTE

    def msg_type(self) -> str:
        """Return the message's short type name."""
        return "place_bid"

    def validate_basic(self) -> None:
        """Check the message without looking at any state; raise AuctionError if bad."""
        if not self.bidder:
            raise AuctionError("invalid (empty) bidder address")
        if self.bid.amount < 0:
            raise AuctionError("invalid (negative) bid amount")
        if self.lot.amount < 0:
            raise AuctionError("invalid (negative) lot amount")

    def sign_bytes(self) -> bytes:
        """Return the canonical, key-sorted JSON encoding that gets signed."""
        payload = {
            "type": MSG_PLACE_BID_TYPE,
            "value": {
                "AuctionID": str(self.auction_id),
                "Bidder": self.bidder,
                "Bid": _coin_json(self.bid),
                "Lot": _coin_json(self.lot),
            },
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()

    def signers(self) -> List[str]:
        """Return the addresses that must sign the message."""
        return [self.bidder]
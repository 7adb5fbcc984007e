"""Storage of auctions, their expiry queue, and the coin movements bids cause."""

from __future__ import annotations

import copy
from bisect import bisect_right, insort
from typing import Dict, Iterator, List, Optional, Protocol, Tuple

from kavachain.auction.auctions import (
    MAX_AUCTION_DURATION,
    AuctionError,
    BankOutput,
    BaseAuction,
    ForwardAuction,
    ForwardReverseAuction,
    ReverseAuction,
)
from kavachain.ledger import Coin, Coins


class _CoinBank(Protocol):
    def add_coins(self, address: str, amount: Coins) -> Coins:
        ...

    def subtract_coins(self, address: str, amount: Coins) -> Coins:
        ...


class AuctionKeeper:
    """Keeps auctions by id, orders them by end time and settles bids through a bank."""

    def __init__(self, bank: _CoinBank) -> None:
        self._bank = bank
        self._auctions: Dict[int, BaseAuction] = {}
        self._queue: List[Tuple[int, int]] = []
        self._next_id = 0

    # ---------- starting auctions ----------

    def start_forward_auction(
        self, height: int, seller: str, lot: Coin, initial_bid: Coin
    ) -> int:
        """Start an auction where bidders raise the bid for a fixed lot."""
        auction, output = ForwardAuction.start(
            seller, lot, initial_bid, height + MAX_AUCTION_DURATION
        )
        return self._start_auction(auction, output)

    def start_reverse_auction(
        self, height: int, buyer: str, bid: Coin, initial_lot: Coin
    ) -> int:
        """Start an auction where sellers compete by accepting a smaller lot."""
        auction, output = ReverseAuction.start(
            buyer, bid, initial_lot, height + MAX_AUCTION_DURATION
        )
        return self._start_auction(auction, output)

    def start_forward_reverse_auction(
        self, height: int, seller: str, lot: Coin, max_bid: Coin, other_person: str
    ) -> int:
        """Start an auction that bids up to ``max_bid``, then bids down on the lot."""
        initial_bid = Coin(max_bid.denom, 0)
        auction, output = ForwardReverseAuction.start(
            seller,
            lot,
            initial_bid,
            height + MAX_AUCTION_DURATION,
            max_bid,
            other_person,
        )
        return self._start_auction(auction, output)

    def _start_auction(self, auction: BaseAuction, initiator_output: BankOutput) -> int:
        auction_id = self._next_id
        auction.id = auction_id
        self._bank.subtract_coins(
            initiator_output.address, Coins(initiator_output.coin)
        )
        self.set_auction(auction)
        self._next_id += 1
        return auction_id

    # ---------- bidding and closing ----------

    def place_bid(
        self, height: int, auction_id: int, bidder: str, bid: Coin, lot: Coin
    ) -> None:
        """Place a bid on any auction and move the coins it requires."""
        auction = self.get_auction(auction_id)
        if auction is None:
            raise AuctionError("auction doesn't exist")
        outputs, inputs = auction.place_bid(height, bidder, lot, bid)
        for output in outputs:
            self._bank.subtract_coins(output.address, Coins(output.coin))
        for entry in inputs:
            self._bank.add_coins(entry.address, Coins(entry.coin))
        self.set_auction(auction)

    def close_auction(self, height: int, auction_id: int) -> None:
        """Pay the lot to the last bidder and remove the auction."""
        auction = self.get_auction(auction_id)
        if auction is None:
            raise AuctionError("auction doesn't exist")
        if height < auction.end_time:
            raise AuctionError(
                f"auction can't be closed as curent block height ({height}) "
                f"is under auction end time ({auction.end_time})"
            )
        payout = auction.payout()
        self._bank.add_coins(payout.address, Coins(payout.coin))
        self.delete_auction(auction_id)

    def end_blocker(self, height: int) -> List[int]:
        """Close every auction whose end time is at or before ``height``."""
        closed = self.expired_auctions(height)
        for auction_id in closed:
            self.close_auction(height, auction_id)
        return closed

    # ---------- store ----------

    def get_auction(self, auction_id: int) -> Optional[BaseAuction]:
        """Return a copy of the stored auction, or None if there is none."""
        auction = self._auctions.get(auction_id)
        return copy.deepcopy(auction) if auction is not None else None

    def set_auction(self, auction: BaseAuction) -> None:
        """Store the auction, replacing any with the same id, and queue it."""
        existing = self._auctions.get(auction.id)
        if existing is not None:
            self.remove_from_queue(existing.end_time, existing.id)
        self._auctions[auction.id] = copy.deepcopy(auction)
        self.insert_into_queue(auction.end_time, auction.id)

    def delete_auction(self, auction_id: int) -> None:
        """Remove an auction and its queue entry without any checks."""
        existing = self._auctions.pop(auction_id, None)
        if existing is not None:
            self.remove_from_queue(existing.end_time, auction_id)

    def auctions(self) -> Iterator[BaseAuction]:
        """Yield copies of all stored auctions in id order."""
        for auction_id in sorted(self._auctions):
            yield copy.deepcopy(self._auctions[auction_id])

    # ---------- queue ----------

    def insert_into_queue(self, end_time: int, auction_id: int) -> None:
        """Queue ``auction_id`` to expire at ``end_time``."""
        entry = (end_time, auction_id)
        index = bisect_right(self._queue, entry)
        if index and self._queue[index - 1] == entry:
            return
        insort(self._queue, entry)

    def remove_from_queue(self, end_time: int, auction_id: int) -> None:
        """Remove a queue entry if present."""
        entry = (end_time, auction_id)
        index = bisect_right(self._queue, entry)
        if index and self._queue[index - 1] == entry:
            del self._queue[index - 1]

    def expired_auctions(self, end_time: int) -> List[int]:
        """Return ids of queued auctions ending at or before ``end_time``, in queue order."""
        return [auction_id for end, auction_id in self._queue if end <= end_time]
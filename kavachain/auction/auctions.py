"""Forward, reverse and forward-reverse auctions and their bidding rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple

from kavachain.ledger import Coin, LedgerError

# Roughly two days at five-second blocks.
MAX_AUCTION_DURATION = 2 * 24 * 3600 // 5
# Roughly three hours at five-second blocks: how far a bid pushes the end time.
BID_DURATION = 3 * 3600 // 5

_MAX_ID = 2**64 - 1
_DIGITS = re.compile(r"[0-9]+")


class AuctionError(LedgerError):
    """A bid or auction operation was rejected."""


@dataclass(frozen=True)
class BankInput:
    """Coins to be credited to an address."""

    address: str
    coin: Coin


@dataclass(frozen=True)
class BankOutput:
    """Coins to be debited from an address."""

    address: str
    coin: Coin


Movements = Tuple[List[BankOutput], List[BankInput]]


def parse_auction_id(text: str) -> int:
    """Parse a decimal, unsigned 64-bit auction id."""
    if not _DIGITS.fullmatch(text):
        raise ValueError(f"invalid auction id: {text!r}")
    value = int(text)
    if value > _MAX_ID:
        raise ValueError(f"auction id out of range: {text!r}")
    return value


@dataclass(kw_only=True)
class BaseAuction:
    """State shared by every kind of auction; heights are block heights."""

    initiator: str
    lot: Coin
    bidder: str
    bid: Coin
    end_time: int
    max_end_time: int
    id: int = 0

    def payout(self) -> BankInput:
        """Return what the winning bidder receives when the auction closes."""
        return BankInput(self.bidder, self.lot)

    def _check_open(self, current_height: int) -> None:
        if current_height > self.end_time:
            raise AuctionError("auction has closed")

    def _extend(self, current_height: int) -> None:
        self.end_time = min(current_height + BID_DURATION, self.max_end_time)

    def _lines(self) -> List[str]:
        return [
            f"Auction {self.id}:",
            f"  Initiator:      {self.initiator}",
            f"  Lot:            {self.lot}",
            f"  Bidder:         {self.bidder}",
            f"  Bid:            {self.bid}",
            f"  End Time:       {self.end_time}",
            f"  Max End Time:   {self.max_end_time}",
        ]

    def __str__(self) -> str:
        return "\n".join(self._lines())


@dataclass(kw_only=True)
class ForwardAuction(BaseAuction):
    """Bidders compete by offering more for a fixed lot."""

    @classmethod
    def start(
        cls, seller: str, lot: Coin, initial_bid: Coin, end_time: int
    ) -> Tuple[ForwardAuction, BankOutput]:
        """Create an auction and the payment the seller owes for the lot."""
        auction = cls(
            initiator=seller,
            lot=lot,
            bidder=seller,
            bid=initial_bid,
            end_time=end_time,
            max_end_time=end_time,
        )
        return auction, BankOutput(seller, lot)

    def place_bid(
        self, current_height: int, bidder: str, lot: Coin, bid: Coin
    ) -> Movements:
        """Accept a higher bid; return the coin movements it causes."""
        self._check_open(current_height)
        if not self.bid.is_lt(bid):
            raise AuctionError("bid not greater than last bid")
        outputs = [BankOutput(bidder, bid)]
        inputs = [
            BankInput(self.bidder, self.bid),
            BankInput(self.initiator, bid.sub(self.bid)),
        ]
        self.bidder = bidder
        self.bid = bid
        self._extend(current_height)
        return outputs, inputs


@dataclass(kw_only=True)
class ReverseAuction(BaseAuction):
    """Bidders compete by accepting a smaller lot for a fixed bid."""

    @classmethod
    def start(
        cls, buyer: str, bid: Coin, initial_lot: Coin, end_time: int
    ) -> Tuple[ReverseAuction, BankOutput]:
        """Create an auction and the payment the buyer owes up front."""
        auction = cls(
            initiator=buyer,
            lot=initial_lot,
            bidder=buyer,
            bid=bid,
            end_time=end_time,
            max_end_time=end_time,
        )
        return auction, BankOutput(buyer, initial_lot)

    def place_bid(
        self, current_height: int, bidder: str, lot: Coin, bid: Coin
    ) -> Movements:
        """Accept a smaller lot; return the coin movements it causes."""
        self._check_open(current_height)
        if not lot.is_lt(self.lot):
            raise AuctionError("lot not smaller than last lot")
        outputs = [BankOutput(bidder, self.bid)]
        inputs = [
            BankInput(self.bidder, self.bid),
            BankInput(self.initiator, self.lot.sub(lot)),
        ]
        self.bidder = bidder
        self.lot = lot
        self._extend(current_height)
        return outputs, inputs


@dataclass(kw_only=True)
class ForwardReverseAuction(BaseAuction):
    """Bids rise up to ``max_bid``, then bidders compete on a smaller lot."""

    max_bid: Coin
    other_person: str

    @classmethod
    def start(
        cls,
        seller: str,
        lot: Coin,
        initial_bid: Coin,
        end_time: int,
        max_bid: Coin,
        other_person: str,
    ) -> Tuple[ForwardReverseAuction, BankOutput]:
        """Create an auction and the payment the seller owes for the lot."""
        auction = cls(
            initiator=seller,
            lot=lot,
            bidder=seller,
            bid=initial_bid,
            end_time=end_time,
            max_end_time=end_time,
            max_bid=max_bid,
            other_person=other_person,
        )
        return auction, BankOutput(seller, lot)

    def place_bid(
        self, current_height: int, bidder: str, lot: Coin, bid: Coin
    ) -> Movements:
        """Accept a bid in the current phase; return the coin movements it causes."""
        self._check_open(current_height)
        if self.bid.is_lt(self.max_bid) and bid.is_lt(self.max_bid):
            # forward phase
            if not self.bid.is_lt(bid):
                raise AuctionError("bid not greater than last bid")
            outputs = [BankOutput(bidder, bid)]
            inputs = [
                BankInput(self.bidder, self.bid),
                BankInput(self.initiator, bid.sub(self.bid)),
            ]
        elif self.bid.is_lt(self.max_bid):
            # switch-over phase: the bid must reach the maximum exactly
            if bid != self.max_bid:
                raise AuctionError("bid greater than the max bid")
            outputs = [BankOutput(bidder, bid)]
            inputs = [
                BankInput(self.bidder, self.bid),
                BankInput(self.initiator, bid.sub(self.bid)),
                BankInput(self.other_person, self.lot.sub(lot)),
            ]
        elif self.bid == self.max_bid:
            # reverse phase
            if not lot.is_lt(self.lot):
                raise AuctionError("lot not smaller than last lot")
            outputs = [BankOutput(bidder, self.bid)]
            inputs = [
                BankInput(self.bidder, self.bid),
                BankInput(self.other_person, self.lot.sub(lot)),
            ]
        else:
            raise AuctionError("auction bid exceeds its max bid")

        self.bidder = bidder
        self.lot = lot
        self.bid = bid
        self._extend(current_height)
        return outputs, inputs

    def __str__(self) -> str:
        return "\n".join(
            self._lines()
            + [
                f"  Max Bid:        {self.max_bid}",
                f"  Other Person:   {self.other_person}",
            ]
        )
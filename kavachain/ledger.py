"""Coins, account balances and price sources shared by the auction and CDP modules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, Mapping, Optional, Protocol, Union

_DENOM = re.compile(r"[a-z][a-z0-9]{2,15}")

PriceLike = Union[Decimal, int, str, float]


class LedgerError(Exception):
    """Base class for errors raised while moving or checking coins."""


class InsufficientCoinsError(LedgerError):
    """An account does not hold enough coins for the requested change."""


class InvalidCoinsError(LedgerError):
    """A set of coins is malformed: bad denomination, duplicate or negative amount."""


class UnknownRequestError(LedgerError):
    """A message or query is not recognised by the module it was sent to."""


@dataclass(frozen=True)
class Coin:
    """An amount of a single denomination."""

    denom: str
    amount: int

    def _require_same_denom(self, other: Coin) -> None:
        if other.denom != self.denom:
            raise ValueError(
                f"invalid coin denominations; {self.denom}, {other.denom}"
            )

    def is_lt(self, other: Coin) -> bool:
        """Return True if this coin is smaller than ``other`` (same denomination)."""
        self._require_same_denom(other)
        return self.amount < other.amount

    def sub(self, other: Coin) -> Coin:
        """Return this coin minus ``other``; the result may not be negative."""
        self._require_same_denom(other)
        result = Coin(self.denom, self.amount - other.amount)
        if result.amount < 0:
            raise ValueError(f"negative coin amount: {result}")
        return result

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


class Coins:
    """An immutable, denomination-sorted collection of coins without zero entries."""

    __slots__ = ("_coins",)

    def __init__(self, *args: Coin) -> None:
        seen = set()
        kept = []
        for coin in args:
            if not _DENOM.fullmatch(coin.denom):
                raise InvalidCoinsError(f"invalid denom: {coin.denom!r}")
            if coin.amount < 0:
                raise InvalidCoinsError(f"negative coin amount: {coin}")
            if coin.denom in seen:
                raise InvalidCoinsError(f"duplicate denomination {coin.denom}")
            seen.add(coin.denom)
            if coin.amount:
                kept.append(coin)
        self._coins = tuple(sorted(kept, key=lambda coin: coin.denom))

    @classmethod
    def _from_amounts(cls, amounts: Mapping[str, int]) -> Coins:
        coins = cls.__new__(cls)
        coins._coins = tuple(
            Coin(denom, amount) for denom, amount in sorted(amounts.items()) if amount
        )
        return coins

    def _amounts(self) -> Dict[str, int]:
        return {coin.denom: coin.amount for coin in self._coins}

    def __iter__(self) -> Iterator[Coin]:
        return iter(self._coins)

    def __len__(self) -> int:
        return len(self._coins)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Coins):
            return NotImplemented
        return self._coins == other._coins

    def __hash__(self) -> int:
        return hash(self._coins)

    def __repr__(self) -> str:
        return f"Coins({', '.join(repr(coin) for coin in self._coins)})"

    def __str__(self) -> str:
        return ",".join(str(coin) for coin in self._coins)

    def amount_of(self, denom: str) -> int:
        """Return the amount held of ``denom``, zero if absent."""
        return self._amounts().get(denom, 0)

    def add(self, other: Coins) -> Coins:
        """Return the sum of both collections."""
        amounts = self._amounts()
        for coin in other:
            amounts[coin.denom] = amounts.get(coin.denom, 0) + coin.amount
        return Coins._from_amounts(amounts)

    def safe_sub(self, other: Coins) -> Coins:
        """Return the difference; it may hold negative amounts and never raises."""
        amounts = self._amounts()
        for coin in other:
            amounts[coin.denom] = amounts.get(coin.denom, 0) - coin.amount
        return Coins._from_amounts(amounts)

    def is_all_gte(self, other: Coins) -> bool:
        """Return True if every coin of ``other`` is covered by this collection."""
        amounts = self._amounts()
        return all(coin.amount <= amounts.get(coin.denom, 0) for coin in other)

    def is_valid(self) -> bool:
        """Return True if all denominations are valid and all amounts positive."""
        return all(
            _DENOM.fullmatch(coin.denom) and coin.amount > 0 for coin in self._coins
        )

    def is_any_negative(self) -> bool:
        """Return True if any amount is negative."""
        return any(coin.amount < 0 for coin in self._coins)

    def without(self, denom: str) -> Coins:
        """Return a copy with ``denom`` removed."""
        amounts = self._amounts()
        amounts.pop(denom, None)
        return Coins._from_amounts(amounts)


class Bank:
    """In-memory account balances."""

    def __init__(self, balances: Optional[Mapping[str, Coins]] = None) -> None:
        self._balances: Dict[str, Coins] = dict(balances or {})

    def get_coins(self, address: str) -> Coins:
        """Return the balance of ``address``."""
        return self._balances.get(address, Coins())

    def has_coins(self, address: str, amount: Coins) -> bool:
        """Return True if ``address`` holds at least ``amount``."""
        return self.get_coins(address).is_all_gte(amount)

    def add_coins(self, address: str, amount: Coins) -> Coins:
        """Credit ``amount`` to ``address`` and return the new balance."""
        if not amount.is_valid():
            raise InvalidCoinsError(str(amount))
        updated = self.get_coins(address).add(amount)
        self._balances[address] = updated
        return updated

    def subtract_coins(self, address: str, amount: Coins) -> Coins:
        """Debit ``amount`` from ``address`` and return the new balance."""
        if not amount.is_valid():
            raise InvalidCoinsError(str(amount))
        current = self.get_coins(address)
        updated = current.safe_sub(amount)
        if updated.is_any_negative():
            raise InsufficientCoinsError(
                f"insufficient account funds; {current} < {amount}"
            )
        self._balances[address] = updated
        return updated


class PriceSource(Protocol):
    """Anything that can tell the current price of an asset."""

    def current_price(self, denom: str) -> Decimal:
        """Return the current price of ``denom`` in the stable currency."""


class StaticPriceFeed:
    """A price source holding fixed prices that can be changed by hand."""

    def __init__(self, prices: Optional[Mapping[str, PriceLike]] = None) -> None:
        self._prices: Dict[str, Decimal] = {}
        for denom, price in (prices or {}).items():
            self.set_price(denom, price)

    def current_price(self, denom: str) -> Decimal:
        """Return the stored price of ``denom``; raise KeyError if there is none."""
        try:
            return self._prices[denom]
        except KeyError:
            raise KeyError(f"no price for asset {denom!r}") from None

    def set_price(self, denom: str, price: PriceLike) -> None:
        """Store ``price`` as the current price of ``denom``."""
        self._prices[denom] = price if isinstance(price, Decimal) else Decimal(str(price))
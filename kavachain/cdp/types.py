"""Collateralized debt positions, module parameters and the CDP message."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from functools import cmp_to_key
from typing import Iterable, List, Tuple, Union

from kavachain.ledger import Coin, LedgerError

STABLE_DENOM = "usdx"
GOV_DENOM = "kava"

ROUTE = "cdp"
MSG_CREATE_OR_MODIFY_CDP_TYPE = "cdp/MsgCreateOrModifyCDP"

# Decimal fields are printed with a fixed number of fractional digits.
_DEC_PLACES = 18

DecLike = Union[Decimal, int, str, float]


class CdpError(LedgerError):
    """A CDP operation or message was rejected."""


def _fraction(value: DecLike) -> Fraction:
    if isinstance(value, (int, Decimal)):
        return Fraction(value)
    return Fraction(Decimal(str(value)))


def _format_dec(value: DecLike) -> str:
    dec = value if isinstance(value, Decimal) else Decimal(str(value))
    return f"{dec:.{_DEC_PLACES}f}"


@dataclass
class CDP:
    """A single collateralized debt position, one per owner and collateral type."""

    owner: str
    collateral_denom: str
    collateral_amount: int = 0
    debt: int = 0

    def is_under_collateralized(
        self, price: DecLike, liquidation_ratio: DecLike
    ) -> bool:
        """Return True if collateral value at ``price`` is below ratio times debt."""
        collateral_value = Fraction(self.collateral_amount) * _fraction(price)
        min_collateral_value = _fraction(liquidation_ratio) * Fraction(self.debt)
        return collateral_value < min_collateral_value

    def __str__(self) -> str:
        return "\n".join(
            [
                "CDP:",
                f"  Owner:      {self.owner}",
                f"  Collateral: {Coin(self.collateral_denom, self.collateral_amount)}",
                f"  Debt:       {Coin(STABLE_DENOM, self.debt)}",
            ]
        )


def format_cdps(cdps: Iterable[CDP]) -> str:
    """Render each CDP followed by a newline."""
    return "".join(f"{cdp}\n" for cdp in cdps)


def _compare_collateral_ratio(a: CDP, b: CDP) -> int:
    for cdp in (a, b):
        if cdp.collateral_amount < 0 or cdp.debt < 0:
            raise CdpError("negative collateral and debt not supported in CDPs")
    # collat_a/debt_a < collat_b/debt_b, rearranged to avoid division
    left = a.collateral_amount * b.debt
    right = b.collateral_amount * a.debt
    if left < right:
        return -1
    if right < left:
        return 1
    return 0


def sort_by_collateral_ratio(cdps: Iterable[CDP]) -> List[CDP]:
    """Return the CDPs ordered by collateral/debt, lowest ratio first."""
    return sorted(cdps, key=cmp_to_key(_compare_collateral_ratio))


@dataclass
class CollateralState:
    """Global information tied to one collateral type."""

    denom: str
    total_debt: int = 0


@dataclass(frozen=True)
class CollateralParams:
    """Settings for one collateral type."""

    denom: str
    liquidation_ratio: Decimal
    debt_limit: int


@dataclass(frozen=True)
class CdpModuleParams:
    """All parameters of the CDP module."""

    global_debt_limit: int
    collateral_params: Tuple[CollateralParams, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "collateral_params", tuple(self.collateral_params))

    def collateral_params_for(self, collateral_denom: str) -> CollateralParams:
        """Return the parameters of ``collateral_denom``; raise CdpError if absent."""
        for params in self.collateral_params:
            if params.denom == collateral_denom:
                return params
        raise CdpError("collateral params not found in module params")

    def is_collateral_present(self, collateral_denom: str) -> bool:
        """Return True if ``collateral_denom`` is an enabled collateral type."""
        return any(params.denom == collateral_denom for params in self.collateral_params)

    def __str__(self) -> str:
        out = (
            "Params:\n"
            f"\tGlobal Debt Limit: {self.global_debt_limit}\n"
            "\tCollateral Params:"
        )
        for params in self.collateral_params:
            out += (
                f"\n\t\t{params.denom}"
                f"\n\t\t\tLiquidation Ratio: {_format_dec(params.liquidation_ratio)}"
                f"\n\t\t\tDebt Limit:        {params.debt_limit}"
            )
        return out


@dataclass(frozen=True)
class MsgCreateOrModifyCDP:
    """Create a CDP or add/remove its collateral and debt."""

    sender: str
    collateral_denom: str
    collateral_change: int
    debt_change: int

    def route(self) -> str:
        """Return the module the message is routed to."""
        return ROUTE

    def msg_type(self) -> str:
        """Return the message's short type name."""
        return "create_modify_cdp"

    def validate_basic(self) -> None:
        """Check the message without looking at any state; raise CdpError if bad."""
        if not self.sender:
            raise CdpError("invalid (empty) sender address")

    def sign_bytes(self) -> bytes:
        """Return the canonical, key-sorted JSON encoding that gets signed."""
        payload = {
            "type": MSG_CREATE_OR_MODIFY_CDP_TYPE,
            "value": {
                "Sender": self.sender,
                "CollateralDenom": self.collateral_denom,
                "CollateralChange": str(self.collateral_change),
                "DebtChange": str(self.debt_change),
            },
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()

    def signers(self) -> List[str]:
        """Return the addresses that must sign the message."""
        return [self.sender]
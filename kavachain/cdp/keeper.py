"""State of all CDPs, global debt accounting and the liquidator's module account."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Tuple

from kavachain.cdp.types import (
    CDP,
    GOV_DENOM,
    STABLE_DENOM,
    CdpError,
    CdpModuleParams,
    CollateralParams,
    CollateralState,
    DecLike,
    sort_by_collateral_ratio,
)
from kavachain.ledger import (
    Coin,
    Coins,
    InsufficientCoinsError,
    InvalidCoinsError,
    PriceSource,
)

# Address under which the keeper holds the liquidator's seized collateral and surplus.
LIQUIDATOR_ACCOUNT_ADDRESS = "liquidator_module_account"


class _AccountBank(Protocol):
    def get_coins(self, address: str) -> Coins:
        ...

    def has_coins(self, address: str, amount: Coins) -> bool:
        ...

    def add_coins(self, address: str, amount: Coins) -> Coins:
        ...

    def subtract_coins(self, address: str, amount: Coins) -> Coins:
        ...


@dataclass(frozen=True)
class GenesisState:
    """State the module must be given when the chain starts."""

    params: CdpModuleParams
    global_debt: int = 0


def default_genesis_state() -> GenesisState:
    """Return the default genesis: btc and xrp collateral, zero global debt."""
    return GenesisState(
        params=CdpModuleParams(
            global_debt_limit=1_000_000,
            collateral_params=(
                CollateralParams(
                    denom="btc",
                    liquidation_ratio=Decimal("1.5"),
                    debt_limit=500_000,
                ),
                CollateralParams(
                    denom="xrp",
                    liquidation_ratio=Decimal("2.0"),
                    debt_limit=500_000,
                ),
            ),
        ),
        global_debt=0,
    )


def validate_genesis(data: GenesisState) -> None:
    """Check a genesis state; any well-formed GenesisState is accepted."""
    if not isinstance(data, GenesisState):
        raise TypeError(f"expected GenesisState, got {type(data).__name__}")


def _as_decimal(value: DecLike) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class CdpKeeper:
    """Creates, changes and seizes CDPs, tracking total debt per collateral and overall.

    It also acts as a bank for other modules, intercepting coins sent to or from
    the liquidator's module account and passing every other call to ``bank``.
    """

    def __init__(self, pricefeed: PriceSource, bank: _AccountBank) -> None:
        self._pricefeed = pricefeed
        self._bank = bank
        self._params: Optional[CdpModuleParams] = None
        self._global_debt: Optional[int] = None
        self._cdps: Dict[Tuple[str, str], CDP] = {}
        self._collateral_states: Dict[str, CollateralState] = {}
        self._liquidator_coins = Coins()

    # ---------- genesis and parameters ----------

    def init_genesis(self, data: GenesisState) -> None:
        """Load parameters and global debt from a genesis state."""
        self._params = data.params
        self._global_debt = data.global_debt

    def export_genesis(self) -> GenesisState:
        """Return the genesis state to export; this is always the default state."""
        return default_genesis_state()

    @property
    def params(self) -> CdpModuleParams:
        """The module parameters set at genesis."""
        if self._params is None:
            raise CdpError("module params not set")
        return self._params

    @property
    def global_debt(self) -> int:
        """The total stable-coin debt drawn from all CDPs."""
        if self._global_debt is None:
            raise CdpError("global debt not found")
        return self._global_debt

    # ---------- CDP operations ----------

    def modify_cdp(
        self,
        owner: str,
        collateral_denom: str,
        change_in_collateral: int,
        change_in_debt: int,
    ) -> None:
        """Create, change or empty a CDP, moving collateral and stable coin."""
        params = self.params
        if not params.is_collateral_present(collateral_denom):
            raise CdpError("collateral type not enabled to create CDPs")

        if change_in_collateral > 0 and not self._bank.has_coins(
            owner, Coins(Coin(collateral_denom, change_in_collateral))
        ):
            raise InsufficientCoinsError("not enough collateral in sender's account")
        if change_in_debt < 0 and not self._bank.has_coins(
            owner, Coins(Coin(STABLE_DENOM, -change_in_debt))
        ):
            raise InsufficientCoinsError("not enough stable coin in sender's account")

        cdp = self.get_cdp(owner, collateral_denom) or CDP(owner, collateral_denom)
        cdp.collateral_amount += change_in_collateral
        if cdp.collateral_amount < 0:
            raise CdpError("can't withdraw more collateral than exists in CDP")
        cdp.debt += change_in_debt
        if cdp.debt < 0:
            raise CdpError("can't pay back more debt than exists in CDP")
        collateral_params = params.collateral_params_for(collateral_denom)
        if cdp.is_under_collateralized(
            self._pricefeed.current_price(collateral_denom),
            collateral_params.liquidation_ratio,
        ):
            raise CdpError("Change to CDP would put it below liquidation ratio")

        global_debt = self.global_debt + change_in_debt
        if global_debt < 0:
            raise CdpError("global debt can't be negative")
        if global_debt > params.global_debt_limit:
            raise CdpError(
                "change to CDP would put the system over the global debt limit"
            )

        state = self.get_collateral_state(collateral_denom) or CollateralState(
            collateral_denom
        )
        state.total_debt += change_in_debt
        if state.total_debt < 0:
            raise CdpError("total debt for this collateral type can't be negative")
        if state.total_debt > collateral_params.debt_limit:
            raise CdpError(
                "change to CDP would put the system over the debt limit "
                "for this collateral type"
            )

        if change_in_collateral < 0:
            self._bank.add_coins(
                owner, Coins(Coin(collateral_denom, -change_in_collateral))
            )
        else:
            self._bank.subtract_coins(
                owner, Coins(Coin(collateral_denom, change_in_collateral))
            )
        if change_in_debt < 0:
            self._bank.subtract_coins(owner, Coins(Coin(STABLE_DENOM, -change_in_debt)))
        else:
            self._bank.add_coins(owner, Coins(Coin(STABLE_DENOM, change_in_debt)))

        self._store_or_drop(cdp)
        self._global_debt = global_debt
        self.set_collateral_state(state)

    def partial_seize_cdp(
        self,
        owner: str,
        collateral_denom: str,
        collateral_to_seize: int,
        debt_to_seize: int,
    ) -> None:
        """Remove collateral and debt from an under-collateralized CDP.

        The collateral is not moved anywhere and global debt is left unchanged.
        """
        cdp = self.get_cdp(owner, collateral_denom)
        if cdp is None:
            raise CdpError("could not find CDP")

        params = self.params
        if not cdp.is_under_collateralized(
            self._pricefeed.current_price(collateral_denom),
            params.collateral_params_for(collateral_denom).liquidation_ratio,
        ):
            raise CdpError("CDP is not currently under the liquidation ratio")

        if collateral_to_seize < 0:
            raise CdpError("cannot seize negative collateral")
        cdp.collateral_amount -= collateral_to_seize
        if cdp.collateral_amount < 0:
            raise CdpError("can't seize more collateral than exists in CDP")

        if debt_to_seize < 0:
            raise CdpError("cannot seize negative debt")
        cdp.debt -= debt_to_seize
        if cdp.debt < 0:
            raise CdpError("can't seize more debt than exists in CDP")

        state = self.get_collateral_state(collateral_denom)
        if state is None:
            raise CdpError("could not find collateral state")
        state.total_debt -= debt_to_seize
        if state.total_debt < 0:
            raise CdpError("Total debt per collateral type is negative.")

        self._store_or_drop(cdp)
        self.set_collateral_state(state)

    def reduce_global_debt(self, amount: int) -> None:
        """Lower the global debt when debt and stable coin are annihilated."""
        if amount < 0:
            raise CdpError("reduction in global debt must be a positive amount")
        new_debt = self.global_debt - amount
        if new_debt < 0:
            raise CdpError("cannot reduce global debt by amount specified")
        self._global_debt = new_debt

    def _store_or_drop(self, cdp: CDP) -> None:
        if cdp.collateral_amount == 0 and cdp.debt == 0:
            self.delete_cdp(cdp)
        else:
            self.set_cdp(cdp)

    # ---------- CDP store ----------

    def get_cdp(self, owner: str, collateral_denom: str) -> Optional[CDP]:
        """Return a copy of the CDP, or None if there is none."""
        cdp = self._cdps.get((collateral_denom, owner))
        return replace(cdp) if cdp is not None else None

    def set_cdp(self, cdp: CDP) -> None:
        """Store a CDP, replacing any with the same owner and collateral."""
        self._cdps[(cdp.collateral_denom, cdp.owner)] = replace(cdp)

    def delete_cdp(self, cdp: CDP) -> None:
        """Remove the CDP with the same owner and collateral, if any."""
        self._cdps.pop((cdp.collateral_denom, cdp.owner), None)

    def get_cdps(
        self, collateral_denom: str = "", price: Optional[DecLike] = None
    ) -> List[CDP]:
        """Return CDPs sorted by collateral ratio, lowest first.

        An empty ``collateral_denom`` selects every CDP. A non-negative ``price``
        keeps only CDPs that would be under-collateralized at that price, and
        needs a collateral denomination.
        """
        params = self.params
        price_dec = None if price is None else _as_decimal(price)
        filter_by_price = price_dec is not None and price_dec >= 0
        if collateral_denom and not params.is_collateral_present(collateral_denom):
            raise CdpError("collateral denom not authorized")
        if not collateral_denom and filter_by_price:
            raise CdpError("cannot specify price without collateral denom")

        selected = [
            replace(self._cdps[key])
            for key in sorted(self._cdps)
            if not collateral_denom or key[0] == collateral_denom
        ]
        cdps = sort_by_collateral_ratio(selected)

        if not filter_by_price:
            return cdps
        ratio = params.collateral_params_for(collateral_denom).liquidation_ratio
        result: List[CDP] = []
        for cdp in cdps:
            if not cdp.is_under_collateralized(price_dec, ratio):
                break
            result.append(cdp)
        return result

    def get_collateral_state(self, collateral_denom: str) -> Optional[CollateralState]:
        """Return a copy of the collateral state, or None if there is none."""
        state = self._collateral_states.get(collateral_denom)
        return replace(state) if state is not None else None

    def set_collateral_state(self, state: CollateralState) -> None:
        """Store the state of one collateral type."""
        self._collateral_states[state.denom] = replace(state)

    # ---------- bank interface ----------

    def add_coins(self, address: str, amount: Coins) -> Coins:
        """Credit coins; for the liquidator account the gov coin is ignored."""
        if address != LIQUIDATOR_ACCOUNT_ADDRESS:
            return self._bank.add_coins(address, amount)
        if not amount.is_valid():
            raise InvalidCoinsError(str(amount))
        current = self._liquidator_coins
        updated = current.add(amount.without(GOV_DENOM))
        if updated.is_any_negative():
            raise InsufficientCoinsError(
                f"insufficient account funds; {current} < {amount}"
            )
        self._liquidator_coins = updated
        return updated

    def subtract_coins(self, address: str, amount: Coins) -> Coins:
        """Debit coins; for the liquidator account the gov coin is ignored."""
        if address != LIQUIDATOR_ACCOUNT_ADDRESS:
            return self._bank.subtract_coins(address, amount)
        if not amount.is_valid():
            raise InvalidCoinsError(str(amount))
        current = self._liquidator_coins
        updated = current.safe_sub(amount.without(GOV_DENOM))
        if updated.is_any_negative():
            raise InsufficientCoinsError(
                f"insufficient account funds; {current} < {amount}"
            )
        self._liquidator_coins = updated
        return updated

    def get_coins(self, address: str) -> Coins:
        """Return the balance of ``address``; the liquidator holds no gov coin."""
        if address == LIQUIDATOR_ACCOUNT_ADDRESS:
            return self._liquidator_coins
        return self._bank.get_coins(address)

    def has_coins(self, address: str, amount: Coins) -> bool:
        """Return True if ``address`` can pay ``amount``; the liquidator always can."""
        if address == LIQUIDATOR_ACCOUNT_ADDRESS:
            return True
        return self._bank.has_coins(address, amount)
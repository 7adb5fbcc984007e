"""Message handling, queries and genesis of the CDP module."""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Union

from kavachain.cdp.keeper import CdpKeeper, GenesisState, validate_genesis
from kavachain.cdp.types import (
    CDP,
    CdpError,
    CdpModuleParams,
    CollateralParams,
    MsgCreateOrModifyCDP,
)
from kavachain.ledger import UnknownRequestError

MODULE_NAME = "cdp"
QUERY_GET_CDPS = "cdps"
QUERY_GET_PARAMS = "params"

_DEC_PLACES = 18

RawJson = Union[str, bytes, bytearray]


def _format_dec(value: Decimal) -> str:
    return f"{value:.{_DEC_PLACES}f}"


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"invalid decimal: {value!r}") from None


def _load_json(raw: Optional[RawJson]) -> Any:
    if raw is None:
        raise ValueError("no JSON data given")
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode()
    return json.loads(raw)


def _cdp_to_json(cdp: CDP) -> Dict[str, str]:
    return {
        "owner": cdp.owner,
        "collateral_denom": cdp.collateral_denom,
        "collateral_amount": str(cdp.collateral_amount),
        "debt": str(cdp.debt),
    }


def _params_to_json(params: CdpModuleParams) -> Dict[str, Any]:
    return {
        "global_debt_limit": str(params.global_debt_limit),
        "collateral_params": [
            {
                "denom": cp.denom,
                "liquidation_ratio": _format_dec(cp.liquidation_ratio),
                "debt_limit": str(cp.debt_limit),
            }
            for cp in params.collateral_params
        ],
    }


def _params_from_json(obj: Dict[str, Any]) -> CdpModuleParams:
    return CdpModuleParams(
        global_debt_limit=int(obj["global_debt_limit"]),
        collateral_params=tuple(
            CollateralParams(
                denom=str(cp["denom"]),
                liquidation_ratio=_to_decimal(cp["liquidation_ratio"]),
                debt_limit=int(cp["debt_limit"]),
            )
            for cp in (obj.get("collateral_params") or [])
        ),
    )


def _genesis_to_json(state: GenesisState) -> str:
    return json.dumps(
        {"params": _params_to_json(state.params), "global_debt": str(state.global_debt)},
        indent=2,
    )


def _genesis_from_json(raw: RawJson) -> GenesisState:
    try:
        obj = _load_json(raw)
        return GenesisState(
            params=_params_from_json(obj["params"]),
            global_debt=int(obj["global_debt"]),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ValueError(f"invalid cdp genesis: {exc}") from None


@dataclass(frozen=True)
class QueryCdpsParams:
    """Filters for a CDP query; all are optional."""

    collateral_denom: str = ""
    owner: str = ""
    under_collateralized_at: Optional[Decimal] = None

    def to_json(self) -> bytes:
        """Encode the filters as query data."""
        price = self.under_collateralized_at
        return json.dumps(
            {
                "collateral_denom": self.collateral_denom,
                "owner": self.owner,
                "under_collateralized_at": None if price is None else _format_dec(price),
            }
        ).encode()

    @classmethod
    def from_json(cls, raw: Optional[RawJson]) -> QueryCdpsParams:
        """Decode query data; raise ValueError if it is malformed."""
        obj = _load_json(raw)
        if not isinstance(obj, dict):
            raise ValueError("query params must be a JSON object")
        price = obj.get("under_collateralized_at")
        return cls(
            collateral_denom=str(obj.get("collateral_denom") or ""),
            owner=str(obj.get("owner") or ""),
            under_collateralized_at=None if price is None else _to_decimal(price),
        )


class CdpModule:
    """Routes messages and queries to a CDP keeper and handles its genesis."""

    name = MODULE_NAME
    route = MODULE_NAME
    querier_route = MODULE_NAME

    def __init__(self, keeper: CdpKeeper) -> None:
        self.keeper = keeper

    def handle(self, msg: object) -> None:
        """Apply a message to the keeper."""
        if not isinstance(msg, MsgCreateOrModifyCDP):
            raise UnknownRequestError(
                f"Unrecognized cdp msg type: {type(msg).__name__}"
            )
        msg.validate_basic()
        self.keeper.modify_cdp(
            msg.sender, msg.collateral_denom, msg.collateral_change, msg.debt_change
        )

    def query(self, path: Sequence[str], data: Optional[RawJson] = None) -> bytes:
        """Answer a ``cdps`` or ``params`` query with indented JSON."""
        endpoint = path[0] if path else ""
        if endpoint == QUERY_GET_CDPS:
            return self._query_cdps(data)
        if endpoint == QUERY_GET_PARAMS:
            return json.dumps(_params_to_json(self.keeper.params), indent=2).encode()
        raise UnknownRequestError("unknown cdp query endpoint")

    def _query_cdps(self, data: Optional[RawJson]) -> bytes:
        try:
            request = QueryCdpsParams.from_json(data)
        except ValueError as exc:
            raise CdpError(f"failed to parse params: {exc}") from None

        cdps: List[CDP]
        if request.owner:
            if not request.collateral_denom:
                raise CdpError(
                    "getting all CDPs belonging to one owner not implemented"
                )
            cdp = self.keeper.get_cdp(request.owner, request.collateral_denom)
            if cdp is None:
                cdp = CDP(request.owner, request.collateral_denom)
            cdps = [cdp]
        else:
            cdps = self.keeper.get_cdps(
                request.collateral_denom, request.under_collateralized_at
            )
        return json.dumps([_cdp_to_json(cdp) for cdp in cdps], indent=2).encode()

    def default_genesis(self) -> str:
        """Return the module's default genesis document."""
        from kavachain.cdp.keeper import default_genesis_state

        return _genesis_to_json(default_genesis_state())

    def validate_genesis(self, raw: RawJson) -> None:
        """Decode and check a genesis document; raise ValueError if malformed."""
        validate_genesis(_genesis_from_json(raw))

    def init_genesis(self, raw: RawJson) -> None:
        """Load a genesis document into the keeper."""
        self.keeper.init_genesis(_genesis_from_json(raw))

    def export_genesis(self) -> str:
        """Return the genesis document for the current state."""
        return _genesis_to_json(self.keeper.export_genesis())
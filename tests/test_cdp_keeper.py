from decimal import Decimal

import pytest

from kavachain.cdp.keeper import (
    LIQUIDATOR_ACCOUNT_ADDRESS,
    CdpKeeper,
    GenesisState,
    default_genesis_state,
    validate_genesis,
)
from kavachain.cdp.types import (
    CDP,
    GOV_DENOM,
    STABLE_DENOM,
    CdpError,
    CollateralState,
)
from kavachain.ledger import (
    Bank,
    Coin,
    Coins,
    InsufficientCoinsError,
    LedgerError,
    StaticPriceFeed,
)

OWNER = "owner_address"


def cs(**amounts):
    return Coins(*(Coin(denom, amount) for denom, amount in amounts.items()))


def make_keeper(balances=None, prices=None, global_debt=0):
    bank = Bank(balances or {})
    feed = StaticPriceFeed(prices or {})
    keeper = CdpKeeper(feed, bank)
    defaults = default_genesis_state()
    keeper.init_genesis(GenesisState(defaults.params, global_debt))
    return keeper, bank, feed


def test_default_genesis_state_values():
    state = default_genesis_state()
    assert state.global_debt == 0
    assert state.params.global_debt_limit == 1000000
    btc = state.params.collateral_params_for("btc")
    xrp = state.params.collateral_params_for("xrp")
    assert btc.liquidation_ratio == Decimal("1.5")
    assert xrp.liquidation_ratio == Decimal("2.0")
    assert btc.debt_limit == 500000
    assert xrp.debt_limit == 500000


def test_validate_genesis_rejects_wrong_type():
    with pytest.raises(TypeError):
        validate_genesis({"params": None})


def test_export_genesis_returns_default():
    keeper, _, _ = make_keeper(global_debt=7)
    assert keeper.export_genesis() == default_genesis_state()


MODIFY_CASES = [
    (
        "addCollateralAndDecreaseDebt",
        (CDP(OWNER, "xrp", 100, 2), cs(xrp=10, usdx=2), 2, CollateralState("xrp", 2)),
        "10.345",
        ("xrp", 10, -1),
        True,
        (CDP(OWNER, "xrp", 110, 1), cs(usdx=1), 1, CollateralState("xrp", 1)),
    ),
    (
        "removeTooMuchCollateral",
        (CDP(OWNER, "xrp", 1000, 200), cs(xrp=10, usdx=10), 200, CollateralState("xrp", 200)),
        "1.00",
        ("xrp", -601, 0),
        False,
        (CDP(OWNER, "xrp", 1000, 200), cs(xrp=10, usdx=10), 200, CollateralState("xrp", 200)),
    ),
    (
        "withdrawTooMuchStableCoin",
        (CDP(OWNER, "xrp", 1000, 200), cs(xrp=10, usdx=10), 200, CollateralState("xrp", 200)),
        "1.00",
        ("xrp", 0, 301),
        False,
        (CDP(OWNER, "xrp", 1000, 200), cs(xrp=10, usdx=10), 200, CollateralState("xrp", 200)),
    ),
    (
        "createCDPAndWithdrawStable",
        (None, cs(xrp=10, usdx=10), 0, CollateralState("xrp", 0)),
        "1.00",
        ("xrp", 5, 2),
        True,
        (CDP(OWNER, "xrp", 5, 2), cs(xrp=5, usdx=12), 2, CollateralState("xrp", 2)),
    ),
    (
        "emptyCDP",
        (CDP(OWNER, "xrp", 1000, 200), cs(xrp=10, usdx=201), 200, CollateralState("xrp", 200)),
        "1.00",
        ("xrp", -1000, -200),
        True,
        (None, cs(xrp=1010, usdx=1), 0, CollateralState("xrp", 0)),
    ),
    (
        "invalidCollateralType",
        (None, cs(junkcoin=5000000), 0, None),
        "0.000001",
        ("junkcoin", 5000000, 1),
        False,
        (None, cs(junkcoin=5000000), 0, None),
    ),
]


@pytest.mark.parametrize(
    "name,prior,price,args,expect_pass,expected",
    MODIFY_CASES,
    ids=[case[0] for case in MODIFY_CASES],
)
def test_modify_cdp(name, prior, price, args, expect_pass, expected):
    prior_cdp, prior_coins, prior_debt, prior_state = prior
    keeper, bank, _ = make_keeper({OWNER: prior_coins}, {"xrp": price}, prior_debt)
    if prior_cdp is not None:
        keeper.set_cdp(prior_cdp)
    if prior_state is not None:
        keeper.set_collateral_state(prior_state)

    denom, change_collateral, change_debt = args
    if expect_pass:
        keeper.modify_cdp(OWNER, denom, change_collateral, change_debt)
    else:
        with pytest.raises(LedgerError):
            keeper.modify_cdp(OWNER, denom, change_collateral, change_debt)

    exp_cdp, exp_coins, exp_debt, exp_state = expected
    assert keeper.get_cdp(OWNER, denom) == exp_cdp
    assert keeper.global_debt == exp_debt
    assert keeper.get_collateral_state(denom) == exp_state
    assert bank.get_coins(OWNER) == exp_coins


def test_modify_cdp_below_ratio_raises_cdp_error():
    keeper, _, _ = make_keeper({OWNER: cs(xrp=10)}, {"xrp": "1.00"})
    with pytest.raises(CdpError, match="liquidation ratio"):
        keeper.modify_cdp(OWNER, "xrp", 10, 6)


def test_modify_cdp_insufficient_collateral():
    keeper, _, _ = make_keeper({OWNER: cs(xrp=3)}, {"xrp": "1.00"})
    with pytest.raises(InsufficientCoinsError):
        keeper.modify_cdp(OWNER, "xrp", 10, 1)


def test_modify_cdp_over_collateral_debt_limit():
    keeper, _, _ = make_keeper({OWNER: cs(xrp=2000000)}, {"xrp": "1.00"})
    with pytest.raises(CdpError, match="debt limit for this collateral type"):
        keeper.modify_cdp(OWNER, "xrp", 2000000, 500001)
    assert keeper.get_cdp(OWNER, "xrp") is None
    assert keeper.global_debt == 0


def test_partial_seize_cdp():
    keeper, _, feed = make_keeper({OWNER: cs(xrp=100)}, {"xrp": "1.00"})
    keeper.modify_cdp(OWNER, "xrp", 10, 5)
    feed.set_price("xrp", "0.90")

    keeper.partial_seize_cdp(OWNER, "xrp", 10, 5)

    assert keeper.get_cdp(OWNER, "xrp") is None
    state = keeper.get_collateral_state("xrp")
    assert state is not None
    assert state.total_debt == 0
    assert keeper.global_debt == 5


def test_partial_seize_requires_under_collateralized():
    keeper, _, _ = make_keeper({OWNER: cs(xrp=100)}, {"xrp": "1.00"})
    keeper.modify_cdp(OWNER, "xrp", 10, 5)
    with pytest.raises(CdpError, match="not currently under"):
        keeper.partial_seize_cdp(OWNER, "xrp", 10, 5)
    assert keeper.get_cdp(OWNER, "xrp") == CDP(OWNER, "xrp", 10, 5)


def test_partial_seize_missing_cdp():
    keeper, _, _ = make_keeper(prices={"xrp": "1.00"})
    with pytest.raises(CdpError, match="could not find CDP"):
        keeper.partial_seize_cdp(OWNER, "xrp", 1, 1)


def test_reduce_global_debt():
    keeper, _, _ = make_keeper(global_debt=10)
    keeper.reduce_global_debt(4)
    assert keeper.global_debt == 6
    with pytest.raises(CdpError):
        keeper.reduce_global_debt(-1)
    with pytest.raises(CdpError):
        keeper.reduce_global_debt(7)
    assert keeper.global_debt == 6


def test_get_cdps():
    keeper, _, _ = make_keeper()
    addr_a, addr_b = "address_a", "address_b"
    cdps = [
        CDP(addr_a, "xrp", 4000, 5),
        CDP(addr_b, "xrp", 4000, 2000),
        CDP(addr_a, "btc", 10, 20),
    ]
    for cdp in cdps:
        keeper.set_cdp(cdp)

    assert keeper.get_cdps("", None) == [
        CDP(addr_a, "btc", 10, 20),
        CDP(addr_b, "xrp", 4000, 2000),
        CDP(addr_a, "xrp", 4000, 5),
    ]
    assert keeper.get_cdps("xrp", Decimal("0.00000001")) == [
        CDP(addr_b, "xrp", 4000, 2000),
        CDP(addr_a, "xrp", 4000, 5),
    ]
    assert keeper.get_cdps("xrp", None) == [
        CDP(addr_b, "xrp", 4000, 2000),
        CDP(addr_a, "xrp", 4000, 5),
    ]
    assert keeper.get_cdps("xrp", Decimal("0.9")) == [CDP(addr_b, "xrp", 4000, 2000)]
    assert keeper.get_cdps("xrp", Decimal("999999999.99")) == []

    with pytest.raises(CdpError):
        keeper.get_cdps("unknowncoin", Decimal("0.34023"))
    with pytest.raises(CdpError):
        keeper.get_cdps("", Decimal("0.34023"))

    keeper.delete_cdp(cdps[0])
    assert keeper.get_cdps("", None) == [
        CDP(addr_a, "btc", 10, 20),
        CDP(addr_b, "xrp", 4000, 2000),
    ]


def test_get_set_delete_cdp():
    keeper, _, _ = make_keeper()
    cdp = CDP(OWNER, "xrp", 412, 56)
    keeper.set_cdp(cdp)
    assert keeper.get_cdp(OWNER, "xrp") == cdp
    keeper.delete_cdp(cdp)
    assert keeper.get_cdp(OWNER, "xrp") is None


def test_stored_cdp_is_a_copy():
    keeper, _, _ = make_keeper()
    cdp = CDP(OWNER, "xrp", 412, 56)
    keeper.set_cdp(cdp)
    cdp.debt = 1
    read = keeper.get_cdp(OWNER, "xrp")
    read.debt = 2
    assert keeper.get_cdp(OWNER, "xrp").debt == 56


def test_get_set_global_debt():
    keeper, _, _ = make_keeper(global_debt=4120000)
    assert keeper.global_debt == 4120000


def test_global_debt_missing_raises():
    keeper = CdpKeeper(StaticPriceFeed(), Bank())
    with pytest.raises(CdpError, match="global debt not found") as excinfo:
        keeper.global_debt
    assert "global debt" in str(excinfo.value)
    keeper.init_genesis(default_genesis_state())
    assert keeper.global_debt == 0


def test_get_set_collateral_state():
    keeper, _, _ = make_keeper()
    state = CollateralState("xrp", 15400)
    keeper.set_collateral_state(state)
    assert keeper.get_collateral_state("xrp") == state
    assert keeper.get_collateral_state("btc") is None


BANK_CASES = [
    ("addNormalAddress", OWNER, True, cs(usdx=53), cs(usdx=153, kava=100)),
    ("subNormalAddress", OWNER, False, cs(usdx=53), cs(usdx=47, kava=100)),
    ("addLiquidatorStable", LIQUIDATOR_ACCOUNT_ADDRESS, True, cs(usdx=53), cs(usdx=153)),
    ("subLiquidatorStable", LIQUIDATOR_ACCOUNT_ADDRESS, False, cs(usdx=53), cs(usdx=47)),
    ("addLiquidatorGov", LIQUIDATOR_ACCOUNT_ADDRESS, True, cs(kava=53), cs(usdx=100)),
    ("subLiquidatorGov", LIQUIDATOR_ACCOUNT_ADDRESS, False, cs(kava=53), cs(usdx=100)),
]


@pytest.mark.parametrize(
    "name,address,should_add,amount,expected",
    BANK_CASES,
    ids=[case[0] for case in BANK_CASES],
)
def test_add_subtract_get_coins(name, address, should_add, amount, expected):
    keeper, _, _ = make_keeper({OWNER: Coins(Coin(STABLE_DENOM, 100), Coin(GOV_DENOM, 100))})
    keeper.add_coins(LIQUIDATOR_ACCOUNT_ADDRESS, cs(usdx=100))
    if should_add:
        keeper.add_coins(address, amount)
    else:
        keeper.subtract_coins(address, amount)
    assert keeper.get_coins(address) == expected


def test_liquidator_subtract_too_much():
    keeper, _, _ = make_keeper()
    keeper.add_coins(LIQUIDATOR_ACCOUNT_ADDRESS, cs(usdx=10))
    with pytest.raises(InsufficientCoinsError):
        keeper.subtract_coins(LIQUIDATOR_ACCOUNT_ADDRESS, cs(usdx=11))
    assert keeper.get_coins(LIQUIDATOR_ACCOUNT_ADDRESS) == cs(usdx=10)


def test_has_coins():
    keeper, _, _ = make_keeper({OWNER: cs(usdx=5)})
    assert keeper.has_coins(LIQUIDATOR_ACCOUNT_ADDRESS, cs(usdx=1000)) is True
    assert keeper.has_coins(OWNER, cs(usdx=5)) is True
    assert keeper.has_coins(OWNER, cs(usdx=6)) is False
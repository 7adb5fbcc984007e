# kavachain

A small library that models collateralized debt positions (CDPs) and the
auctions used to liquidate them. All state is kept in memory.

## What it provides

- `kavachain.ledger` holds the shared building blocks:
  - `Coin` and `Coins` values.
  - `Bank`, a simple store of account balances.
  - `StaticPriceFeed`, which holds prices you set by hand.
  - The exceptions `LedgerError`, `InsufficientCoinsError`,
    `InvalidCoinsError` and `UnknownRequestError`.
- `kavachain.auction.auctions` has three kinds of auction:
  - `ForwardAuction`: bidders offer a higher bid for a fixed lot.
  - `ReverseAuction`: bidders accept a smaller lot for a fixed bid.
  - `ForwardReverseAuction`: bids rise up to `max_bid`, then bidders
    compete on a smaller lot.

  Each bid extends the end time by `BID_DURATION` blocks, up to the
  auction's `max_end_time`. Each `place_bid` returns the coin movements
  that the bid causes. A rejected bid raises `AuctionError`.
- `kavachain.auction.keeper.AuctionKeeper` stores auctions and settles bids
  through a bank. It also keeps an expiry queue. `end_blocker(height)`
  closes every auction that has expired and pays the lot to the last
  bidder.
- `kavachain.auction.msg.MsgPlaceBid` is the bid message.
  `kavachain.auction.module.AuctionModule` routes it to the keeper and
  answers the `getauctions` query.
- `kavachain.cdp.types` holds the CDP data and its rules:
  - `CDP`, `CollateralState`, `CollateralParams` and `CdpModuleParams`.
  - `MsgCreateOrModifyCDP`.
  - Sorting by collateral ratio.
- `kavachain.cdp.keeper.CdpKeeper` works on CDPs:
  - It creates, changes, seizes and lists CDPs.
  - It enforces liquidation ratios and both the global and the
    per-collateral debt limits.
  - It also acts as a bank for the liquidator's module account
    (`LIQUIDATOR_ACCOUNT_ADDRESS`). Gov coins (`kava`) sent to or from that
    account are ignored. Every other call is passed on to the underlying
    bank.
- `kavachain.cdp.module.CdpModule` handles `MsgCreateOrModifyCDP` messages.
  It answers the `cdps` and `params` queries, which take JSON data built
  with `QueryCdpsParams`. It also reads and writes genesis documents as
  JSON.

Operations that break a rule raise an exception and leave state
unchanged. Examples are bidding too low, drawing debt past a limit, and
withdrawing collateral that would leave a CDP under-collateralized.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

A CDP:

```python
from decimal import Decimal

from kavachain.ledger import Bank, Coin, Coins, StaticPriceFeed
from kavachain.cdp.keeper import CdpKeeper, default_genesis_state

bank = Bank({"owner": Coins(Coin("xrp", 100))})
prices = StaticPriceFeed({"xrp": Decimal("1.00")})
keeper = CdpKeeper(prices, bank)
keeper.init_genesis(default_genesis_state())

# Lock 10 xrp as collateral and draw 5 usdx of debt.
keeper.modify_cdp("owner", "xrp", 10, 5)
print(keeper.get_cdp("owner", "xrp"))
print(bank.get_coins("owner"))  # 5usdx,90xrp
```

A forward auction:

```python
from kavachain.ledger import Bank, Coin, Coins
from kavachain.auction.keeper import AuctionKeeper

bank = Bank({
    "seller": Coins(Coin("kava", 100)),
    "buyer": Coins(Coin("usdx", 100)),
})
keeper = AuctionKeeper(bank)

auction_id = keeper.start_forward_auction(1, "seller", Coin("kava", 20), Coin("usdx", 0))
keeper.place_bid(2, auction_id, "buyer", Coin("usdx", 10), Coin("kava", 20))

auction = keeper.get_auction(auction_id)
keeper.end_blocker(auction.end_time)  # closes the auction
print(bank.get_coins("buyer"))   # 20kava,90usdx
print(bank.get_coins("seller"))  # 80kava,10usdx
```

## What it does not do

This is a library only. It does not provide any of the following:

- a command-line client or daemon;
- an HTTP/REST server;
- persistent storage;
- transaction signing or signature checking;
- block production.

Messages can produce their canonical `sign_bytes()`, but nothing checks
signatures against them. Block heights are plain integers that you pass
in. Prices come only from a price source you supply, such as
`StaticPriceFeed`.
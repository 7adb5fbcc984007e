"""Collateralized debt positions and liquidation auctions over an in-memory ledger."""

__version__ = "0.1.0"
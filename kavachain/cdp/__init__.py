"""Collateralized debt positions: types, keeper and message module."""
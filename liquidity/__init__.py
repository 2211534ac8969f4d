"""Guaranteed Liquidity Program: redemption engine."""

__version__ = "0.1.0"

"""
Quote Pricing Package

Quote-to-package pricing engine for the travel back office.
Resolves holiday quote prices from package pricing matrices
(Tier → Duration → Period → Price), keeps them in sync as trip
parameters change and keeps an append-only price history.
"""

__version__ = "1.0.0"

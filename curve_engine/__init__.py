"""
Bonding Curve Quote Engine

Exact integer pricing for bonding-curve tokens:
- Buy cost / sell proceeds for a token amount
- Token amount for a SOL budget or SOL target
- Spot price before and after a trade

Quotes always round in favour of the reserve pool.
"""

__version__ = "1.0.0"

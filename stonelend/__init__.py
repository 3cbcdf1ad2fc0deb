"""Client core for Stone lending markets: risk math, Pyth price bundling and transaction history."""

__version__ = "0.1.0"

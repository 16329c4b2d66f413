"""Personal finance tracker backend (users, categories, transactions, balance)."""

__version__ = "0.1.0"

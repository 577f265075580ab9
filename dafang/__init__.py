"""Rules, move generation and decision arbitration for the dafang formation game."""

__version__ = "0.1.0"

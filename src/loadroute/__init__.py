"""Route and financial derivation engine for load editing surfaces."""

__version__ = "0.1.0"

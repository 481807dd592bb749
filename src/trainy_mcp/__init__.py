"""Cross-border train journey search over multiple national rail providers."""

__version__ = "0.1.0"

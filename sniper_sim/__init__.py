"""Educational token sniper simulator (dry run only)."""

__version__ = "0.1.0"

"""SnapTriage: structured diagnostics for error screenshots."""

__version__ = "0.1.0"

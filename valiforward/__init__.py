"""Composable clients for batching, sorting, packing and buffering labelled log lines, and a copy tool."""

__version__ = "0.1.0"

__all__ = [
    "batch",
    "types",
    "multi_tenant",
    "pack",
    "sorted_client",
    "dque",
    "client",
    "copytool",
]
"""Relay backend for L2 restaking through cross-chain EigenAgent execution."""

__version__ = "0.1.0"

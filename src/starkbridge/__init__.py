"""Stark Bridge: Bitcoin to Starknet incoming swap order service."""

__version__ = "0.1.0"

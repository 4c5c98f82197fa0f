"""Chat client and assistant service for signed on-chain transfer proposals."""

__version__ = "0.1.0"

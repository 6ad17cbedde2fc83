"""Selectors for the transfer kernel (read side)."""

from transfer_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector"]

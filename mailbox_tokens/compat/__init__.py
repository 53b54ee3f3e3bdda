"""Compatibility shims for deprecated token formats.

Kept apart from the vault so steady-state code never imports them.
"""
from .legacy import LegacyEnvelopeCodec

__all__ = ["LegacyEnvelopeCodec"]

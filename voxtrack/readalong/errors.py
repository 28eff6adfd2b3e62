"""
Exceptions raised by the read-along pipeline.

Expected misses (no active word, no match in the text) are reported with
None or -1 rather than exceptions; only these conditions raise.
"""


class VoxTrackError(Exception):
    """Base class for read-along errors."""


class ConfigurationError(VoxTrackError):
    """Invalid options were passed to the pipeline."""


class NothingToSpeakError(VoxTrackError):
    """The document has no speakable text once filtered."""


class TransportError(VoxTrackError):
    """The speech service connection failed or dropped."""


class RecoveryExhaustedError(VoxTrackError):
    """Reconnect attempts ran out; the session was stopped."""

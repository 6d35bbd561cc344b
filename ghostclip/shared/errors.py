"""Error kinds raised by the cooker, codec, framer and file layers."""


class ClipError(Exception):
    """Base class for every recoverable ghostclip failure."""


class InsufficientSamples(ClipError, ValueError):
    """Fewer than 2 samples to cook or play."""


class InvalidInterval(ClipError, ValueError):
    """Close without a matching open, duplicate open, or inverted frame range."""


class CompressionFailure(ClipError, RuntimeError):
    pass


class DecompressionFailure(ClipError, RuntimeError):
    """Corrupt stream or size mismatch against the declared uncompressed size."""


class RangeUnavailable(ClipError, KeyError):
    """Low-tier decode requested without the range data used at encode time."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class TruncatedFile(ClipError, EOFError):
    """Fewer bytes than the declared header or payload size."""


class RuntimeVersionMismatch(ClipError, ValueError):
    """Unexpected file magic or version."""

"""
Exception types shared across the conversion pipeline.
"""


class BlockArtError(Exception):
    """Base class for all pipeline errors."""


class PreconditionFailed(BlockArtError, ValueError):
    """
    A caller supplied arguments the pipeline cannot work with.

    Raised for an empty palette, a non-positive chunk size, or a
    malformed catalog entry. These indicate a misconfigured run and are
    never retried.
    """


class UnreadableSource(BlockArtError, OSError):
    """An image or video could not be decoded."""

    def __init__(self, path, reason: str = "unreadable"):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")

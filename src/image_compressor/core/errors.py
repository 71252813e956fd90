from __future__ import annotations


class CompressionError(Exception):
    """Base class for every failure the compression pipeline reports."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownPreset(CompressionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown preset: '{name}'.")
        self.name = name


class InvalidBounds(CompressionError):
    pass


class InvalidQuality(CompressionError):
    pass


class DecodeFailure(CompressionError):
    pass


class EncodeFailure(CompressionError):
    pass


class Cancelled(CompressionError):
    """Raised when a request is superseded before it completes.

    Never shown to the user: it is the normal outcome of a newer request winning.
    """

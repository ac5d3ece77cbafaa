"""Exceptions raised while reading songs."""


class SongCorruptedError(Exception):
    """
    Raised when a song stream cannot be decoded.

    The lowest-level failure (truncated stream, bad length prefix, value the
    model rejects) is always chained as ``__cause__``.
    """

    def __init__(self, detail: str | None = None) -> None:
        message = "Song corrupted!"
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)

from __future__ import annotations


class DiningVotesError(RuntimeError):
    """Base class for every error raised by the voting core."""


class MalformedPayload(DiningVotesError):
    """Client-submitted vote bitmaps failed structural validation."""


class CorruptSnapshot(DiningVotesError):
    """A registry snapshot could not be decoded."""


class FetchError(DiningVotesError):
    """A network dependency (menu feed, snapshot source, counter store) was unreachable."""


class StoreError(DiningVotesError):
    """The counter store rejected an operation after the connection was established."""

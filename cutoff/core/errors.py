from __future__ import annotations


class ProcessingError(RuntimeError):
    """Base for every failure of the /process pipeline. Surfaced as a 500 with the message."""


class ValidationError(ProcessingError):
    """Request shape or range is invalid. Raised before any I/O."""


class SourceUnavailable(ProcessingError):
    pass


class StagingFailed(ProcessingError):
    pass


class FilterProcessError(ProcessingError):
    """The external filter process could not be launched or exited abnormally."""


class PublishError(ProcessingError):
    pass


class PlaybackError(RuntimeError):
    """Client side failure; reflected in UI state, never fatal to the engine."""


class FetchError(PlaybackError):
    pass


class DecodeError(PlaybackError):
    pass

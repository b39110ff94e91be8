from __future__ import annotations


class SmileFramesError(Exception):
    """Base class for every error raised by the extraction pipeline."""


class ConcurrentRunRejected(SmileFramesError):
    """A run was requested while another run on the same extractor is active."""


class SourceLoadFailed(SmileFramesError):
    """The video source could not be opened or decoded at all."""


class DetectionUnavailable(SmileFramesError):
    """The face/expression provider failed to initialize or is unusable."""


class OverallTimeout(SmileFramesError):
    """The whole run exceeded its wall-clock ceiling."""


class SampleError(SmileFramesError):
    """A failure confined to a single sample instant. The run continues."""


class SeekFailed(SampleError):
    pass


class SeekTimeout(SeekFailed):
    pass

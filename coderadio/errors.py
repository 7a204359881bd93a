"""Exception hierarchy for Code Radio.

Three kinds of failure exist:

* transient, recoverable conditions (``StreamInterrupted``,
  ``MalformedEventError``, ``CorruptFrameError``) that are absorbed by the
  component that owns them,
* session-fatal conditions (``SessionFatalError`` and subclasses) that end the
  playback session and are reported to the user,
* contract violations (``InvalidVolumeError``) rejected at the call site.
"""


class CodeRadioError(Exception):
    """Base class for all Code Radio errors."""


class StreamInterrupted(CodeRadioError):
    """A network stream ended or failed; the caller may reconnect."""


class MalformedEventError(CodeRadioError):
    """A metadata event payload could not be parsed."""


class CorruptFrameError(CodeRadioError):
    """A single audio frame could not be decoded."""


class PlaybackStoppedError(CodeRadioError):
    """A frame was enqueued after the playback sink was stopped."""


class SessionFatalError(CodeRadioError):
    """The playback session cannot continue."""


class StationNotFoundError(SessionFatalError):
    """The requested station does not exist (or no longer exists)."""

    def __init__(self, station_id: str):
        super().__init__(f'Station with ID "{station_id}" not found')
        self.station_id = station_id


class AudioDeviceError(SessionFatalError):
    """The audio output device is unavailable or was lost."""


class ReconnectExhaustedError(SessionFatalError):
    """The reconnect policy gave up on a stream."""


class InvalidVolumeError(ValueError):
    """Volume outside the supported range."""

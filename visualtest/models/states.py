"""Lifecycle states and output formats shared by tests and captures."""

from __future__ import annotations

from enum import Enum


class VisualTestState(Enum):
    """Lifecycle of a visual test.

    Attributes:
        NOT_STARTED: Test has been configured but not run.
        STARTING: ``start()`` is preparing directories and the scene.
        RUNNING: Scene is live and captures are being produced.
        FAILED: Terminal.  At least one failure was reported.
        PASSED: Terminal.  Every capture finished without failure.
    """

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    PASSED = "passed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions can occur from this state."""
        return self in (VisualTestState.FAILED, VisualTestState.PASSED)


class CaptureState(Enum):
    """Lifecycle of a single capture.

    Attributes:
        PENDING: Waiting for its delay or its next capture slot.
        QUEUED: A render request is outstanding.
        COMPLETE: Terminal.  Will produce no further images.
        FAILED: Terminal.  Will produce no further images.
    """

    PENDING = "pending"
    QUEUED = "queued"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions can occur from this state."""
        return self in (CaptureState.COMPLETE, CaptureState.FAILED)


class CaptureFormat(Enum):
    """Image file formats a capture can be written as.

    The enum value doubles as the file extension.
    """

    BMP = "bmp"
    PNG = "png"
    TGA = "tga"
    JPG = "jpg"

    @property
    def extension(self) -> str:
        """File extension without the leading dot."""
        return self.value

    @property
    def supports_alpha(self) -> bool:
        """Whether files of this format keep an alpha channel."""
        return self in (CaptureFormat.PNG, CaptureFormat.TGA)

    @classmethod
    def from_extension(cls, extension: str) -> CaptureFormat:
        """Look up a format by file extension.

        Args:
            extension: Extension with or without a leading dot, any
                case.  ``jpeg`` is accepted as an alias of ``jpg``.

        Returns:
            The matching ``CaptureFormat``.

        Raises:
            ValueError: If the extension is not a supported format.
        """
        ext = extension.lower().lstrip(".")
        if ext == "jpeg":
            ext = "jpg"
        return cls(ext)

"""Notifications exchanged between captures, tests and the engine.

Captures report their progress to whoever owns their scene through the
``CaptureListener`` interface.  The scene keeps the list of listeners, so
a test subscribes by registering itself on the scene it loaded and
unsubscribes by removing itself when it finishes.

Engine-level notifications carry no payload beyond the time step and are
plain callables:

* ``SceneUpdateListener`` -- called once per scene update with the
  simulated time step in seconds.
* ``FrameEndListener`` -- called once at the end of every engine frame,
  after all rendering for that frame has finished.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visualtest.core.capture import Capture

SceneUpdateListener = Callable[[float], None]
FrameEndListener = Callable[[], None]
RenderCallback = Callable[[], None]


class CaptureListener(ABC):
    """Observer for capture lifecycle notifications."""

    @abstractmethod
    def on_capture_failed(self, capture: Capture, reason: str) -> None:
        """A capture failed and will produce no further images.

        Args:
            capture: The failed capture.
            reason: Human-readable failure description.
        """

    @abstractmethod
    def on_capture_image_ready(self, capture: Capture) -> None:
        """A capture produced an image.

        The image is available through ``capture.image`` and its file
        name through ``capture.image_file_name`` for the duration of
        this call only.

        Args:
            capture: The capture that produced the image.
        """

    def on_capture_complete(self, capture: Capture) -> None:
        """A capture finished producing images.  Informational."""

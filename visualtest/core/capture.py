"""Scheduled render-to-image captures.

A ``Capture`` is a scene component that, once its delay has elapsed,
asks the renderer to draw the scene through a camera into an off-screen
render target and reads the result back into an image.  Captures with a
non-zero duration keep producing a numbered image sequence every
``frequency`` seconds until the duration has passed.

Per frame the capture walks through at most these stages:

1. ``update`` (scene tick) -- accumulate elapsed time and, when a
   capture is due, register a one-shot before-render callback.
2. Before-render -- validate the configuration, allocate a render
   target and queue the viewport (``Queued``).
3. End-of-render -- read the target back into an image, release the
   render resources, notify the scene, and either complete or return
   to ``Pending`` for the next slot.

Typical usage::

    node = scene.create_child("CameraNode")
    node.add_component(Camera())
    capture = node.add_component(Capture(name="shot", image_size=(64, 64)))
    capture.duration = 1.0
    capture.frequency = 0.25
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from visualtest.engine.interface import RendererInterface, RenderTarget, Viewport
from visualtest.models.scene import Camera, Component
from visualtest.models.states import CaptureFormat, CaptureState

logger = logging.getLogger(__name__)

# Default render target size, in pixels, for newly created captures.
_DEFAULT_IMAGE_SIZE: tuple[int, int] = (1000, 1000)


class Capture(Component):
    """Scene component producing one image, or a timed image sequence.

    If no camera is assigned explicitly the capture uses a ``Camera``
    component on its own node.

    Args:
        name: Base file name of the produced images.  Required before
            the first render is queued.
        image_format: File format the images are meant to be saved as.
        image_size: ``(width, height)`` of the render target in pixels.
        delay: Seconds to wait before the first image.
        duration: Seconds over which to keep capturing.  ``0`` produces
            a single image.
        frequency: Minimum seconds between two images of a sequence.
        camera: Explicit camera; overrides the sibling lookup.
    """

    def __init__(
        self,
        name: str = "",
        image_format: CaptureFormat = CaptureFormat.PNG,
        image_size: tuple[int, int] = _DEFAULT_IMAGE_SIZE,
        delay: float = 0.0,
        duration: float = 0.0,
        frequency: float = 0.0,
        camera: Camera | None = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.image_format = image_format
        self.image_size = image_size
        self._state: CaptureState = CaptureState.PENDING
        self._delay: float = max(delay, 0.0)
        self._duration: float = max(duration, 0.0)
        self._frequency: float = max(frequency, 0.0)
        self._camera: Camera | None = camera

        self._time_elapsed: float = 0.0
        self._time_last_capture: float = 0.0
        self._frame_index: int = 0
        self._renders_requested: int = 0
        self._failure_reason: str = ""

        # Transient render resources, non-None only while a request is
        # outstanding.
        self._renderer: RendererInterface | None = None
        self._viewport: Viewport | None = None
        self._render_target: RenderTarget | None = None
        self._image: NDArray[np.uint8] | None = None
        self._outstanding: bool = False

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_failed(self) -> bool:
        return self._state is CaptureState.FAILED

    @property
    def is_complete(self) -> bool:
        return self._state is CaptureState.COMPLETE

    @property
    def is_done(self) -> bool:
        """Whether the capture will produce no further images."""
        return self._state.is_terminal

    @property
    def is_multi_frame(self) -> bool:
        """Whether this capture produces a numbered image sequence."""
        return self._duration > 0.0

    @property
    def failure_reason(self) -> str:
        return self._failure_reason

    @property
    def time_elapsed(self) -> float:
        return self._time_elapsed

    @property
    def time_last_capture(self) -> float:
        return self._time_last_capture

    @property
    def frame_index(self) -> int:
        """Index of the next image to be produced."""
        return self._frame_index

    @property
    def has_render_resources(self) -> bool:
        """Whether a render target or viewport is currently held."""
        return self._render_target is not None or self._viewport is not None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def delay(self) -> float:
        return self._delay

    @delay.setter
    def delay(self, seconds: float) -> None:
        self._delay = max(seconds, 0.0)
        self._time_elapsed = 0.0

    @property
    def duration(self) -> float:
        return self._duration

    @duration.setter
    def duration(self, seconds: float) -> None:
        self._duration = max(seconds, 0.0)

    @property
    def frequency(self) -> float:
        return self._frequency

    @frequency.setter
    def frequency(self, seconds: float) -> None:
        self._frequency = max(seconds, 0.0)

    @property
    def camera(self) -> Camera | None:
        """The explicit camera, or a ``Camera`` on the same node."""
        if self._camera is not None:
            return self._camera
        return self.get_component(Camera)

    @camera.setter
    def camera(self, camera: Camera | None) -> None:
        self._camera = camera

    @property
    def image(self) -> NDArray[np.uint8] | None:
        """The image just read back.  Only set during image-ready delivery."""
        return self._image

    @property
    def image_file_name(self) -> str:
        """File name for the current image.

        Single images and the first image of a sequence are named
        ``<name>.<ext>``; later images of a sequence are named
        ``<name>_<index>.<ext>``.
        """
        ext = self.image_format.extension
        if self.is_multi_frame and self._frame_index > 0:
            return f"{self.name}_{self._frame_index}.{ext}"
        return f"{self.name}.{ext}"

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def update(self, time_step: float) -> None:
        self.advance(time_step)

    def advance(self, time_step: float) -> None:
        """Advance the capture clock and request a render when one is due.

        Args:
            time_step: Simulated seconds since the previous call.
        """
        if self.is_done:
            return

        self._time_elapsed += time_step

        if self._time_elapsed < self._delay:
            return

        # The previous request must be read back before the next one.
        if self._outstanding:
            return

        if self._renders_requested > 0:
            if not self.is_multi_frame:
                return
            if self._time_elapsed - self._time_last_capture < self._frequency:
                return

        renderer = self.scene.renderer if self.scene is not None else None
        if renderer is None:
            self._mark_failed("No renderer available for capture")
            return

        self._time_last_capture = self._time_elapsed
        self._renders_requested += 1
        self._outstanding = True
        self._renderer = renderer
        renderer.request_before_render(self._handle_before_render)

    # ------------------------------------------------------------------
    # Render request lifecycle
    # ------------------------------------------------------------------

    def _handle_before_render(self) -> None:
        if self.is_done:
            self._release_render_resources()
            return
        self._queue_render()

    def _queue_render(self) -> None:
        """Validate configuration and submit the viewport for rendering."""
        camera = self.camera
        if camera is None:
            self._release_render_resources()
            self._mark_failed("No camera assigned for capture")
            return

        width, height = self.image_size
        if width <= 0 or height <= 0:
            self._release_render_resources()
            self._mark_failed("Invalid image size")
            return

        if not self.name:
            self._release_render_resources()
            self._mark_failed("No name provided for capture")
            return

        scene = self.scene
        renderer = self._renderer
        if scene is None or renderer is None:
            self._release_render_resources()
            self._mark_failed("No renderer available for capture")
            return

        self._viewport = Viewport(scene=scene, camera=camera)
        self._render_target = renderer.create_render_target(width, height)
        renderer.queue_viewport(self._render_target, self._viewport)
        self._state = CaptureState.QUEUED
        renderer.request_end_render(self._handle_end_render)

    def _handle_end_render(self) -> None:
        image = self._read_rendered_image()
        if image is None:
            self._mark_failed("Texture read failed")
            return

        self._image = image
        try:
            self._notify_image_ready()
        finally:
            self._image = None

        if self.is_multi_frame:
            self._frame_index += 1

        if self.is_done:
            return

        if self._time_elapsed >= self._duration + self._delay:
            self._mark_complete()
        else:
            self._state = CaptureState.PENDING

    def _read_rendered_image(self) -> NDArray[np.uint8] | None:
        """Copy the render target into a new image, then release resources."""
        try:
            if self._render_target is None or self._renderer is None:
                return None
            return self._renderer.read_render_target(self._render_target)
        finally:
            self._release_render_resources()

    def _release_render_resources(self) -> None:
        self._viewport = None
        self._render_target = None
        self._renderer = None
        self._outstanding = False

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _mark_failed(self, reason: str) -> None:
        self._state = CaptureState.FAILED
        self._failure_reason = reason
        logger.debug("Capture %r failed: %s", self.name, reason)
        scene = self.scene
        if scene is not None:
            scene.notify_capture_failed(self, reason)

    def _mark_complete(self) -> None:
        self._state = CaptureState.COMPLETE
        logger.debug(
            "Capture %r complete after %d image(s)", self.name, self._renders_requested
        )
        scene = self.scene
        if scene is not None:
            scene.notify_capture_complete(self)

    def _notify_image_ready(self) -> None:
        scene = self.scene
        if scene is not None:
            scene.notify_capture_image_ready(self)

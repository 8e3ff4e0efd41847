"""Abstract contracts for the engine and renderer driving visual tests.

The harness never renders anything itself.  It advances an engine one
frame at a time and relies on a renderer to turn viewports into pixels.
Concrete backends subclass ``EngineInterface`` and ``RendererInterface``;
the factory function ``create_engine()`` returns a backend by name.

Frame contract every engine must honour:

1. Update every attached scene with the frame's time step.
2. Run the renderer's frame: fire the one-shot before-render callbacks,
   render all queued viewports, fire the one-shot end-of-render
   callbacks.
3. Notify frame-end listeners.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from visualtest.models.events import FrameEndListener, RenderCallback
from visualtest.models.scene import Camera, Scene


@dataclass
class RenderTarget:
    """An off-screen surface a viewport can be rendered into.

    Attributes:
        width: Surface width in pixels.
        height: Surface height in pixels.
        pixels: Rendered contents, shape ``(height, width, 4)`` in BGRA
            order with dtype ``uint8``.  ``None`` until rendered.
    """

    width: int
    height: int
    pixels: NDArray[np.uint8] | None = field(default=None, repr=False)


@dataclass
class Viewport:
    """A scene seen through a camera."""

    scene: Scene
    camera: Camera


class RendererInterface(ABC):
    """Contract for the rendering backend used by captures."""

    @abstractmethod
    def create_render_target(self, width: int, height: int) -> RenderTarget:
        """Allocate a render target of the given size."""

    @abstractmethod
    def queue_viewport(self, target: RenderTarget, viewport: Viewport) -> None:
        """Render *viewport* into *target* during the current frame."""

    @abstractmethod
    def request_before_render(self, callback: RenderCallback) -> None:
        """Call *callback* once, right before viewports are rendered.

        Viewports queued from within the callback are rendered in the
        same frame.
        """

    @abstractmethod
    def request_end_render(self, callback: RenderCallback) -> None:
        """Call *callback* once, after all viewports have been rendered."""

    @abstractmethod
    def read_render_target(self, target: RenderTarget) -> NDArray[np.uint8] | None:
        """Copy the contents of *target* into a new image.

        Returns:
            A new array of shape ``(height, width, 4)``, or ``None`` if
            the target cannot be read back.
        """

    @abstractmethod
    def render_frame(self) -> None:
        """Run one frame of rendering (see the module docstring)."""


class EngineInterface(ABC):
    """Contract for the engine main loop driven by the harness."""

    @abstractmethod
    def initialize(self) -> bool:
        """Perform one-time setup.

        Returns:
            ``True`` on success.
        """

    @property
    @abstractmethod
    def renderer(self) -> RendererInterface:
        """The renderer this engine draws with."""

    @abstractmethod
    def attach_scene(self, scene: Scene) -> None:
        """Start updating *scene* every frame and bind it to the renderer."""

    @abstractmethod
    def detach_scene(self, scene: Scene) -> None:
        """Stop updating *scene* and unbind it from the renderer."""

    @abstractmethod
    def add_frame_end_listener(self, listener: FrameEndListener) -> None:
        """Register *listener* to be called at the end of every frame."""

    @abstractmethod
    def remove_frame_end_listener(self, listener: FrameEndListener) -> None:
        """Unregister a frame-end listener.  Unknown listeners are ignored."""

    @abstractmethod
    def run_frame(self, time_step: float) -> None:
        """Advance the simulation by *time_step* seconds and render."""

    def get_engine_name(self) -> str:
        """Return a short identifier for the backend."""
        return "unknown"


# ----------------------------------------------------------------------
# Factory
# ----------------------------------------------------------------------


def create_engine(name: str = "headless") -> EngineInterface:
    """Return an engine backend by name.

    Backend modules are imported lazily so that optional backends only
    pull in their dependencies when selected.

    Args:
        name: Backend identifier.  ``"headless"`` selects the software
            rasteriser shipped with this package.

    Returns:
        A new, uninitialised ``EngineInterface`` instance.

    Raises:
        NotImplementedError: If *name* is not a known backend.
    """
    if name == "headless":
        from visualtest.engine.headless import HeadlessEngine

        return HeadlessEngine()

    raise NotImplementedError(f"Unsupported engine backend: {name!r}")

"""Headless engine backend with a CPU software rasteriser.

``HeadlessEngine`` runs the frame loop described in
``visualtest.engine.interface`` without a window or GPU.
``SoftwareRenderer`` clears each render target to the camera's clear
colour and then lets every enabled ``Drawable`` in the scene paint into
it.  The output is deterministic, which makes the backend suitable for
exercising the harness itself and for suites that only need flat
geometry.

Typical usage::

    engine = HeadlessEngine()
    engine.initialize()
    engine.attach_scene(scene)
    engine.run_frame(1.0 / 60.0)
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from visualtest.engine.interface import (
    EngineInterface,
    RendererInterface,
    RenderTarget,
    Viewport,
)
from visualtest.models.events import FrameEndListener, RenderCallback
from visualtest.models.scene import Camera, Component, Scene

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Drawables
# ----------------------------------------------------------------------


class Drawable(Component):
    """Component the software renderer asks to paint itself."""

    def draw(self, pixels: NDArray[np.uint8], camera: Camera) -> None:
        """Paint into *pixels*, a ``(H, W, 4)`` BGRA array, in place."""
        raise NotImplementedError


class FillRect(Drawable):
    """Axis-aligned solid rectangle in normalised viewport coordinates.

    Args:
        rect: ``(x, y, width, height)`` with each value in ``[0, 1]``
            relative to the render target size.
        color: Fill colour as a ``(b, g, r, a)`` tuple of 8-bit values.
    """

    def __init__(
        self,
        rect: tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0),
        color: tuple[int, int, int, int] = (255, 255, 255, 255),
    ) -> None:
        super().__init__()
        self.rect = rect
        self.color = color

    def pixel_bounds(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Return ``(x0, y0, x1, y1)`` clipped to a target of the given size."""
        x, y, w, h = self.rect
        x0 = int(round(x * width))
        y0 = int(round(y * height))
        x1 = int(round((x + w) * width))
        y1 = int(round((y + h) * height))
        return (
            max(0, min(width, x0)),
            max(0, min(height, y0)),
            max(0, min(width, x1)),
            max(0, min(height, y1)),
        )

    def draw(self, pixels: NDArray[np.uint8], camera: Camera) -> None:
        height, width = pixels.shape[:2]
        x0, y0, x1, y1 = self.pixel_bounds(width, height)
        if x1 > x0 and y1 > y0:
            pixels[y0:y1, x0:x1] = self.color


# ----------------------------------------------------------------------
# Renderer
# ----------------------------------------------------------------------


class SoftwareRenderer(RendererInterface):
    """Deterministic CPU renderer producing BGRA ``uint8`` images."""

    def __init__(self) -> None:
        self._before_render: list[RenderCallback] = []
        self._end_render: list[RenderCallback] = []
        self._queued: list[tuple[RenderTarget, Viewport]] = []
        self._frames_rendered: int = 0

    @property
    def frames_rendered(self) -> int:
        """Number of ``render_frame`` calls so far."""
        return self._frames_rendered

    def create_render_target(self, width: int, height: int) -> RenderTarget:
        return RenderTarget(width=width, height=height)

    def queue_viewport(self, target: RenderTarget, viewport: Viewport) -> None:
        self._queued.append((target, viewport))

    def request_before_render(self, callback: RenderCallback) -> None:
        self._before_render.append(callback)

    def request_end_render(self, callback: RenderCallback) -> None:
        self._end_render.append(callback)

    def read_render_target(self, target: RenderTarget) -> NDArray[np.uint8] | None:
        if target.pixels is None:
            return None
        return target.pixels.copy()

    def render_frame(self) -> None:
        # One-shot callbacks: swap the lists out before calling so that
        # callbacks registered during this frame fire next frame.
        before, self._before_render = self._before_render, []
        for callback in before:
            callback()

        queued, self._queued = self._queued, []
        for target, viewport in queued:
            target.pixels = self.rasterize(viewport, target.width, target.height)

        end, self._end_render = self._end_render, []
        for callback in end:
            callback()

        self._frames_rendered += 1

    def rasterize(self, viewport: Viewport, width: int, height: int) -> NDArray[np.uint8]:
        """Render *viewport* into a fresh ``(height, width, 4)`` array."""
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = viewport.camera.clear_color
        for component in viewport.scene.iter_enabled_components():
            if isinstance(component, Drawable):
                component.draw(pixels, viewport.camera)
        return pixels


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------


class HeadlessEngine(EngineInterface):
    """Frame loop over attached scenes using a ``SoftwareRenderer``.

    Args:
        renderer: Renderer to draw with.  A new ``SoftwareRenderer`` is
            created when omitted.
    """

    def __init__(self, renderer: RendererInterface | None = None) -> None:
        self._renderer = renderer or SoftwareRenderer()
        self._scenes: list[Scene] = []
        self._frame_end_listeners: list[FrameEndListener] = []
        self._initialized: bool = False
        self._frame_count: int = 0
        self._elapsed: float = 0.0

    def initialize(self) -> bool:
        self._initialized = True
        logger.info("HeadlessEngine initialised.")
        return True

    @property
    def renderer(self) -> RendererInterface:
        return self._renderer

    @property
    def frame_count(self) -> int:
        """Number of frames run so far."""
        return self._frame_count

    @property
    def elapsed(self) -> float:
        """Total simulated seconds advanced so far."""
        return self._elapsed

    @property
    def scenes(self) -> list[Scene]:
        """Scenes currently attached, in attachment order."""
        return list(self._scenes)

    def attach_scene(self, scene: Scene) -> None:
        if scene in self._scenes:
            return
        scene.renderer = self._renderer
        self._scenes.append(scene)

    def detach_scene(self, scene: Scene) -> None:
        if scene in self._scenes:
            self._scenes.remove(scene)
        scene.renderer = None

    def add_frame_end_listener(self, listener: FrameEndListener) -> None:
        self._frame_end_listeners.append(listener)

    def remove_frame_end_listener(self, listener: FrameEndListener) -> None:
        if listener in self._frame_end_listeners:
            self._frame_end_listeners.remove(listener)

    def run_frame(self, time_step: float) -> None:
        if not self._initialized:
            raise RuntimeError("Engine not initialised.  Call initialize() first.")

        for scene in list(self._scenes):
            scene.update(time_step)

        self._renderer.render_frame()

        for listener in list(self._frame_end_listeners):
            listener()

        self._frame_count += 1
        self._elapsed += time_step

    def get_engine_name(self) -> str:
        return "headless"

"""Unit tests for Capture scheduling and the render request lifecycle.

Captures are driven through a real ``HeadlessEngine`` so that the
before-render and end-of-render callbacks fire in frame order.  Time
steps of 0.125 keep the accumulated clock exact.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from visualtest.core.capture import Capture
from visualtest.engine.headless import HeadlessEngine, SoftwareRenderer
from visualtest.models.events import CaptureListener
from visualtest.models.scene import Camera, Scene
from visualtest.models.states import CaptureFormat, CaptureState


class RecordingListener(CaptureListener):
    """Captures every notification for later inspection."""

    def __init__(self) -> None:
        self.ready: list[dict[str, Any]] = []
        self.failed: list[str] = []
        self.completed: int = 0

    def on_capture_failed(self, capture: Capture, reason: str) -> None:
        self.failed.append(reason)

    def on_capture_image_ready(self, capture: Capture) -> None:
        self.ready.append(
            {
                "file_name": capture.image_file_name,
                "elapsed": capture.time_elapsed,
                "image": capture.image,
                "holds_resources": capture.has_render_resources,
                "state": capture.state,
            }
        )

    def on_capture_complete(self, capture: Capture) -> None:
        self.completed += 1


class _FailingReadRenderer(SoftwareRenderer):
    def read_render_target(self, target):
        return None


class _StalledRenderer(SoftwareRenderer):
    """Renders viewports but never fires end-of-render callbacks."""

    def __init__(self) -> None:
        super().__init__()
        self.viewports_queued = 0

    def queue_viewport(self, target, viewport) -> None:
        self.viewports_queued += 1
        super().queue_viewport(target, viewport)

    def request_end_render(self, callback) -> None:
        pass


def _build(
    capture: Capture,
    with_camera: bool = True,
    renderer: SoftwareRenderer | None = None,
    attach: bool = True,
) -> tuple[HeadlessEngine, Scene, RecordingListener]:
    engine = HeadlessEngine(renderer=renderer)
    engine.initialize()
    scene = Scene()
    node = scene.create_child("CameraNode")
    if with_camera:
        node.add_component(Camera(clear_color=(10, 20, 30, 255)))
    node.add_component(capture)
    listener = RecordingListener()
    scene.add_capture_listener(listener)
    if attach:
        engine.attach_scene(scene)
    return engine, scene, listener


def _run_until_done(engine: HeadlessEngine, capture: Capture, step: float, limit: int = 200) -> int:
    """Run a zero-step start frame, then *step* frames until done."""
    frames = 0
    time_step = 0.0
    while not capture.is_done and frames < limit:
        engine.run_frame(time_step)
        time_step = step
        frames += 1
    return frames


# ==================================================================
# Configuration
# ==================================================================


class TestConfiguration:
    """Tests for capture settings and derived values."""

    def test_defaults(self) -> None:
        """A new capture is pending, single-frame, PNG, 1000x1000."""
        capture = Capture()
        assert capture.state is CaptureState.PENDING
        assert capture.image_format is CaptureFormat.PNG
        assert capture.image_size == (1000, 1000)
        assert not capture.is_multi_frame
        assert capture.frame_index == 0

    def test_negative_timing_clamped(self) -> None:
        """Negative delay, duration and frequency become zero."""
        capture = Capture(delay=-1.0, duration=-2.0, frequency=-3.0)
        assert (capture.delay, capture.duration, capture.frequency) == (0.0, 0.0, 0.0)
        capture.duration = -1.0
        capture.frequency = -1.0
        capture.delay = -1.0
        assert (capture.delay, capture.duration, capture.frequency) == (0.0, 0.0, 0.0)

    def test_delay_setter_resets_elapsed(self) -> None:
        """Changing the delay restarts the capture clock."""
        capture = Capture(name="c", delay=1.0)
        capture.advance(0.5)
        assert capture.time_elapsed == 0.5
        capture.delay = 2.0
        assert capture.time_elapsed == 0.0
        assert capture.state is CaptureState.PENDING

    def test_sibling_camera(self) -> None:
        """Without an explicit camera the sibling camera is used."""
        capture = Capture(name="c")
        _, scene, _ = _build(capture)
        sibling = scene.get_child("CameraNode").get_component(Camera)
        assert capture.camera is sibling

    def test_explicit_camera_overrides_sibling(self) -> None:
        """An explicitly assigned camera wins over the sibling."""
        other = Camera()
        capture = Capture(name="c", camera=other)
        _build(capture)
        assert capture.camera is other

    @pytest.mark.parametrize(
        "fmt,expected",
        [
            (CaptureFormat.PNG, "shot.png"),
            (CaptureFormat.TGA, "shot.tga"),
            (CaptureFormat.BMP, "shot.bmp"),
            (CaptureFormat.JPG, "shot.jpg"),
        ],
    )
    def test_single_frame_file_name(self, fmt: CaptureFormat, expected: str) -> None:
        """Single captures are named after the capture and format."""
        assert Capture(name="shot", image_format=fmt).image_file_name == expected


# ==================================================================
# Scheduling
# ==================================================================


class TestSingleFrame:
    """Tests for captures producing one image."""

    def test_single_image_then_complete(self) -> None:
        """One image is delivered and the capture completes the same frame."""
        capture = Capture(name="shot", image_size=(3, 2))
        engine, _, listener = _build(capture)

        engine.run_frame(0.0)

        assert len(listener.ready) == 1
        assert capture.state is CaptureState.COMPLETE
        assert listener.completed == 1
        image = listener.ready[0]["image"]
        assert image.shape == (2, 3, 4)
        assert (image == (10, 20, 30, 255)).all()
        assert listener.ready[0]["file_name"] == "shot.png"

    def test_no_further_images(self) -> None:
        """Extra frames after completion produce nothing."""
        capture = Capture(name="shot", image_size=(2, 2))
        engine, _, listener = _build(capture)
        for _ in range(5):
            engine.run_frame(0.125)
        assert len(listener.ready) == 1
        assert listener.completed == 1

    def test_delay_gates_first_image(self) -> None:
        """Nothing is captured until the delay has elapsed."""
        capture = Capture(name="shot", image_size=(2, 2), delay=0.5)
        engine, _, listener = _build(capture)

        for _ in range(4):
            engine.run_frame(0.1)
        assert listener.ready == []
        assert capture.state is CaptureState.PENDING

        engine.run_frame(0.1)
        assert len(listener.ready) == 1
        assert listener.ready[0]["elapsed"] >= 0.5
        assert capture.is_complete


class TestMultiFrame:
    """Tests for timed image sequences."""

    def test_exact_cadence(self) -> None:
        """Images arrive every frequency seconds, inclusive of the end."""
        capture = Capture(name="seq", image_size=(2, 2), duration=1.0, frequency=0.25)
        engine, _, listener = _build(capture)

        frames = _run_until_done(engine, capture, 0.125)

        assert capture.is_complete
        assert frames == 9
        assert [r["elapsed"] for r in listener.ready] == [0.0, 0.25, 0.5, 0.75, 1.0]
        assert [r["file_name"] for r in listener.ready] == [
            "seq.png",
            "seq_1.png",
            "seq_2.png",
            "seq_3.png",
            "seq_4.png",
        ]
        assert capture.frame_index == 5
        assert listener.completed == 1

    def test_inexact_step_respects_minimum_gap(self) -> None:
        """With steps that do not divide the frequency, gaps never undershoot."""
        step = 0.1
        capture = Capture(name="seq", image_size=(2, 2), duration=1.0, frequency=0.25)
        engine, _, listener = _build(capture)

        _run_until_done(engine, capture, step)

        times = [r["elapsed"] for r in listener.ready]
        assert len(times) >= 2
        for earlier, later in zip(times, times[1:]):
            assert later - earlier >= 0.25
            assert later - earlier < 0.25 + step + 1e-9
        assert times[-1] >= 1.0
        assert capture.is_complete

    def test_returns_to_pending_between_images(self) -> None:
        """Between images a sequence waits in PENDING."""
        capture = Capture(name="seq", image_size=(2, 2), duration=1.0, frequency=0.25)
        engine, _, listener = _build(capture)
        engine.run_frame(0.0)
        assert len(listener.ready) == 1
        assert capture.state is CaptureState.PENDING
        engine.run_frame(0.125)
        assert len(listener.ready) == 1

    def test_zero_frequency_captures_every_frame(self) -> None:
        """Frequency zero yields one image per frame until the duration ends."""
        capture = Capture(name="seq", image_size=(1, 1), duration=0.5)
        engine, _, listener = _build(capture)
        _run_until_done(engine, capture, 0.125)
        assert [r["elapsed"] for r in listener.ready] == [0.0, 0.125, 0.25, 0.375, 0.5]

    def test_delay_offsets_completion(self) -> None:
        """Completion waits for delay plus duration."""
        capture = Capture(name="seq", image_size=(1, 1), delay=0.25, duration=0.5, frequency=0.25)
        engine, _, listener = _build(capture)
        _run_until_done(engine, capture, 0.125)
        assert [r["elapsed"] for r in listener.ready] == [0.25, 0.5, 0.75]


# ==================================================================
# Resources
# ==================================================================


class TestResources:
    """Tests for render target lifetime and image delivery."""

    def test_resources_released_before_delivery(self) -> None:
        """The image is available during delivery, resources are not."""
        capture = Capture(name="shot", image_size=(2, 2))
        engine, _, listener = _build(capture)
        engine.run_frame(0.0)

        delivered = listener.ready[0]
        assert delivered["image"] is not None
        assert delivered["holds_resources"] is False
        assert delivered["state"] is CaptureState.QUEUED

    def test_image_cleared_after_delivery(self) -> None:
        """The image is only exposed while listeners are notified."""
        capture = Capture(name="shot", image_size=(2, 2))
        engine, _, _ = _build(capture)
        engine.run_frame(0.0)
        assert capture.image is None
        assert not capture.has_render_resources

    def test_stalled_renderer_keeps_single_request(self) -> None:
        """An unanswered readback blocks further requests."""
        renderer = _StalledRenderer()
        capture = Capture(name="seq", image_size=(2, 2), duration=1.0, frequency=0.25)
        engine, _, listener = _build(capture, renderer=renderer)

        engine.run_frame(0.0)
        for _ in range(10):
            engine.run_frame(0.125)

        assert capture.state is CaptureState.QUEUED
        assert renderer.viewports_queued == 1
        assert capture.has_render_resources
        assert listener.ready == []


# ==================================================================
# Failures
# ==================================================================


class TestFailures:
    """Tests for every failure path of a capture."""

    def test_no_camera(self) -> None:
        capture = Capture(name="shot", image_size=(2, 2))
        engine, _, listener = _build(capture, with_camera=False)
        engine.run_frame(0.0)
        assert capture.is_failed
        assert listener.failed == ["No camera assigned for capture"]
        assert not capture.has_render_resources

    @pytest.mark.parametrize("size", [(0, 10), (10, 0), (-1, -1)])
    def test_invalid_size(self, size: tuple[int, int]) -> None:
        capture = Capture(name="shot", image_size=size)
        engine, _, listener = _build(capture)
        engine.run_frame(0.0)
        assert capture.is_failed
        assert listener.failed == ["Invalid image size"]
        assert not capture.has_render_resources

    def test_empty_name(self) -> None:
        capture = Capture(name="", image_size=(2, 2))
        engine, _, listener = _build(capture)
        engine.run_frame(0.0)
        assert listener.failed == ["No name provided for capture"]
        assert capture.failure_reason == "No name provided for capture"

    def test_no_renderer(self) -> None:
        """A scene not attached to an engine has no renderer."""
        capture = Capture(name="shot", image_size=(2, 2))
        _, scene, listener = _build(capture, attach=False)
        scene.update(0.0)
        assert capture.is_failed
        assert listener.failed == ["No renderer available for capture"]

    def test_readback_failure(self) -> None:
        capture = Capture(name="shot", image_size=(2, 2))
        engine, _, listener = _build(capture, renderer=_FailingReadRenderer())
        engine.run_frame(0.0)
        assert capture.is_failed
        assert listener.failed == ["Texture read failed"]
        assert listener.ready == []
        assert not capture.has_render_resources

    def test_failure_is_terminal(self) -> None:
        """A failed capture stays failed and reports only once."""
        capture = Capture(name="seq", image_size=(2, 2), duration=1.0)
        engine, _, listener = _build(capture, with_camera=False)
        for _ in range(5):
            engine.run_frame(0.125)
        assert capture.state is CaptureState.FAILED
        assert len(listener.failed) == 1
        assert listener.ready == []

    def test_failure_mid_sequence_stops_images(self) -> None:
        """Removing the camera mid-sequence fails on the next request."""
        capture = Capture(name="seq", image_size=(2, 2), duration=1.0, frequency=0.25)
        engine, scene, listener = _build(capture)
        engine.run_frame(0.0)
        assert len(listener.ready) == 1

        node = scene.get_child("CameraNode")
        node.components = [c for c in node.components if not isinstance(c, Camera)]
        for _ in range(4):
            engine.run_frame(0.125)

        assert capture.is_failed
        assert len(listener.ready) == 1
        assert listener.failed == ["No camera assigned for capture"]


def test_images_are_independent_copies() -> None:
    """Each delivered image is a fresh array."""
    capture = Capture(name="seq", image_size=(2, 2), duration=0.25, frequency=0.125)
    engine, _, listener = _build(capture)
    _run_until_done(engine, capture, 0.125)
    images = [r["image"] for r in listener.ready]
    assert len(images) == 3
    assert not np.shares_memory(images[0], images[1])

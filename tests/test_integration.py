"""End-to-end runs of the harness with the headless engine.

These tests write real image files under ``tmp_path`` and check the
golden-image workflow: a first run produces output, the output is
promoted to golden data, and later runs compare against it.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import numpy as np

from visualtest.config.settings import Settings
from visualtest.core.capture import Capture
from visualtest.core.harness import VisualTestHarness
from visualtest.core.image_store import ImageStore
from visualtest.core.visual_test import VisualTest
from visualtest.engine.headless import FillRect
from visualtest.models.scene import Camera, Scene
from visualtest.models.states import CaptureFormat, VisualTestState
from visualtest.suites.shapes import create_shape_tests

_TEST_NAME = "Sequence/Basic"


def _load_sequence_scene(test: VisualTest) -> Scene:
    scene = Scene()
    node = scene.create_child("Camera")
    node.add_component(Camera(clear_color=(0, 0, 255, 255)))
    node.add_component(
        Capture(
            name="capture",
            image_format=CaptureFormat.PNG,
            image_size=(1, 1),
            delay=0.0,
            duration=0.3,
            frequency=0.1,
        )
    )
    return scene


def _run_sequence(output: Path, golden: Path) -> VisualTest:
    harness = VisualTestHarness(
        Settings(time_step=0.1, output_root=str(output), golden_root=str(golden))
    )
    test = harness.create_test(_TEST_NAME, _load_sequence_scene)
    assert harness.initialize()
    harness.run_all_tests()
    return test


class TestGoldenWorkflow:
    """First run, promotion to golden data, and re-runs."""

    def test_first_run_writes_sequence(self, tmp_path: Path) -> None:
        test = _run_sequence(tmp_path / "out", tmp_path / "golden")

        assert test.state is VisualTestState.PASSED
        produced = sorted(p.name for p in (tmp_path / "out" / _TEST_NAME).iterdir())
        assert produced == ["capture.png", "capture_1.png", "capture_2.png", "capture_3.png"]
        assert all(not c.golden_found for c in test.result.comparisons)

    def test_rerun_against_own_output_passes(self, tmp_path: Path) -> None:
        _run_sequence(tmp_path / "out", tmp_path / "golden")
        shutil.copytree(tmp_path / "out", tmp_path / "golden")

        test = _run_sequence(tmp_path / "out2", tmp_path / "golden")

        assert test.state is VisualTestState.PASSED
        comparisons = test.result.comparisons
        assert len(comparisons) == 4
        assert all(c.golden_found and c.passed for c in comparisons)
        assert all(c.pixel_match_fraction == 1.0 for c in comparisons)

    def test_changed_golden_pixel_fails(self, tmp_path: Path) -> None:
        _run_sequence(tmp_path / "out", tmp_path / "golden")
        shutil.copytree(tmp_path / "out", tmp_path / "golden")

        golden_file = tmp_path / "golden" / _TEST_NAME / "capture_2.png"
        store = ImageStore()
        image = store.read_image(golden_file)
        assert image is not None
        image[0, 0] = (255, 255, 255, 255)
        assert store.write_image(golden_file, image, CaptureFormat.PNG)

        test = _run_sequence(tmp_path / "out2", tmp_path / "golden")

        assert test.state is VisualTestState.FAILED
        assert test.failure_reason.startswith("Image (capture_2.png) did not match golden data")
        # Images after the failing one are never produced.
        assert test.result.images_written == ["capture.png", "capture_1.png", "capture_2.png"]

    def test_rendered_content(self, tmp_path: Path) -> None:
        """Drawables end up in the written image."""

        def load(test: VisualTest) -> Scene:
            scene = Scene()
            scene.create_child("Box").add_component(
                FillRect(rect=(0.0, 0.0, 0.5, 1.0), color=(0, 255, 0, 255))
            )
            node = scene.create_child("Camera")
            node.add_component(Camera())
            node.add_component(Capture(name="shot", image_size=(4, 2)))
            return scene

        harness = VisualTestHarness(
            Settings(output_root=str(tmp_path / "out"), golden_root=str(tmp_path))
        )
        harness.create_test("Box", load)
        assert harness.initialize()
        harness.run_all_tests()

        image = ImageStore().read_image(tmp_path / "out" / "Box" / "shot.png")
        assert image is not None
        assert image.shape == (2, 4, 4)
        np.testing.assert_array_equal(image[:, :2], np.full((2, 2, 4), (0, 255, 0, 255)))
        np.testing.assert_array_equal(image[:, 2:], np.full((2, 2, 4), (0, 0, 0, 255)))


class TestShapesSuite:
    """The bundled example suite runs end to end."""

    def test_registers_twelve_tests(self) -> None:
        harness = VisualTestHarness()
        create_shape_tests(harness)
        names = [t.name for t in harness.tests]
        assert len(names) == 12
        assert names[:3] == ["Shapes/Square_Base", "Shapes/Square_Inverted", "Shapes/Square_Animated"]
        assert names[-1] == "Shapes/AllShapes_Animated"

    def test_all_pass_without_golden_data(self, tmp_path: Path) -> None:
        harness = VisualTestHarness(
            Settings(
                time_step=0.125,
                output_root=str(tmp_path / "out"),
                golden_root=str(tmp_path / "golden"),
            )
        )
        create_shape_tests(harness)
        assert harness.initialize()
        results = harness.run_all_tests()

        assert all(r.passed for r in results)
        animated = tmp_path / "out" / "Shapes" / "Square_Animated"
        assert sorted(p.name for p in animated.iterdir()) == [
            "capture.png",
            "capture_1.png",
            "capture_2.png",
        ]

    def test_animated_frames_differ(self, tmp_path: Path) -> None:
        harness = VisualTestHarness(
            Settings(time_step=0.125, output_root=str(tmp_path / "out"), golden_root=str(tmp_path))
        )
        create_shape_tests(harness)
        assert harness.initialize()
        harness.run_all_tests()

        store = ImageStore()
        folder = tmp_path / "out" / "Shapes" / "Column_Animated"
        first = store.read_image(folder / "capture.png")
        last = store.read_image(folder / "capture_2.png")
        assert first is not None and last is not None
        assert not np.array_equal(first, last)

    def test_inverted_uses_white_background(self, tmp_path: Path) -> None:
        harness = VisualTestHarness(
            Settings(output_root=str(tmp_path / "out"), golden_root=str(tmp_path))
        )
        create_shape_tests(harness)
        assert harness.initialize()
        harness.run_all_tests()

        image = ImageStore().read_image(tmp_path / "out" / "Shapes" / "Square_Inverted" / "capture.png")
        assert image is not None
        assert image[0, 0].tolist() == [255, 255, 255, 255]

"""Example suite: flat shapes rendered by the headless engine.

Each test loads the same scene and uses switches to select which
shapes are visible and how the camera is set up.  The suite doubles as
a template for real suites: define a scene loader that reads the test's
switches, then register one test per variant.

Register from the CLI with::

    visualtest --suite visualtest.suites.shapes:create_shape_tests
"""

from __future__ import annotations

from visualtest.core.capture import Capture
from visualtest.core.harness import VisualTestHarness
from visualtest.core.visual_test import VisualTest
from visualtest.engine.headless import FillRect
from visualtest.models.scene import Camera, Scene
from visualtest.models.states import CaptureFormat

SHAPE_NAMES: tuple[str, ...] = ("Square", "Banner", "Column")

_SHAPES: dict[str, tuple[tuple[float, float, float, float], tuple[int, int, int, int]]] = {
    "Square": ((0.25, 0.25, 0.5, 0.5), (40, 40, 220, 255)),
    "Banner": ((0.0, 0.1, 1.0, 0.2), (220, 120, 40, 255)),
    "Column": ((0.7, 0.0, 0.15, 1.0), (60, 200, 60, 255)),
}

_IMAGE_SIZE: tuple[int, int] = (64, 64)


class ShapeSlider:
    """Moves a shape horizontally at a fixed speed."""

    def __init__(self, shape: FillRect, speed: float) -> None:
        self.shape = shape
        self.speed = speed

    def __call__(self, time_step: float) -> None:
        x, y, w, h = self.shape.rect
        self.shape.rect = (x + self.speed * time_step, y, w, h)


def load_shapes_scene(test: VisualTest) -> Scene | None:
    """Build the shapes scene for *test* according to its switches.

    Switches:
        AllShapes / <shape name>: make the shape visible.
        Inverted: white clear colour instead of black.
        Animated: slide the visible shapes and capture a sequence.
    """
    scene = Scene("Shapes")

    shapes_root = scene.create_child("Shapes")
    for shape_name in SHAPE_NAMES:
        rect, color = _SHAPES[shape_name]
        node = shapes_root.create_child(shape_name)
        node.add_component(FillRect(rect=rect, color=color))
        node.set_enabled_recursive(test.get_switch("AllShapes") or test.get_switch(shape_name))

    if not any(node.enabled for node in shapes_root.children):
        test.fail("No shapes enabled for test")
        return None

    clear_color = (255, 255, 255, 255) if test.get_switch("Inverted") else (0, 0, 0, 255)
    camera_node = scene.create_child("Camera")
    camera_node.add_component(Camera(clear_color=clear_color))

    capture = camera_node.add_component(
        Capture(
            name="capture",
            image_format=CaptureFormat.PNG,
            image_size=_IMAGE_SIZE,
        )
    )

    if test.get_switch("Animated"):
        capture.duration = 0.5
        capture.frequency = 0.25
        for node in shapes_root.children:
            shape = node.get_component(FillRect)
            if shape is not None:
                scene.add_update_listener(ShapeSlider(shape, speed=0.2))

    return scene


def define_test(
    harness: VisualTestHarness,
    shape: str,
    variant: str,
    features: list[str],
) -> VisualTest:
    """Register ``Shapes/<shape>_<variant>`` with the given switches on."""
    return harness.create_test(
        name=f"Shapes/{shape}_{variant}",
        scene_loader=load_shapes_scene,
        switches=[shape, *features],
    )


def add_shape_tests(harness: VisualTestHarness, shape: str) -> None:
    define_test(harness, shape, "Base", [])
    define_test(harness, shape, "Inverted", ["Inverted"])
    define_test(harness, shape, "Animated", ["Animated"])


def create_shape_tests(harness: VisualTestHarness) -> None:
    """Register the full shapes suite on *harness*."""
    for shape in SHAPE_NAMES:
        add_shape_tests(harness, shape)
    add_shape_tests(harness, "AllShapes")

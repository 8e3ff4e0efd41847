"""Per-test outcome records collected by the harness.

These dataclasses are produced by ``VisualTest`` while it runs and read
by the harness and the CLI summary.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from visualtest.models.states import VisualTestState


@dataclass
class ImageComparison:
    """Outcome of comparing one captured image against its golden image.

    Attributes:
        file_name: Capture file name, relative to the test directory.
        golden_found: Whether a golden image existed for the capture.
        pixel_match_fraction: Fraction of matching pixels (0-1).  Zero
            when no golden image was found.
        ssim: Structural similarity score (0-1).
        passed: Whether the match fraction reached the pass threshold.
    """

    file_name: str
    golden_found: bool
    pixel_match_fraction: float = 0.0
    ssim: float = 0.0
    passed: bool = False


@dataclass
class VisualTestResult:
    """Final outcome of one visual test.

    Attributes:
        name: Test name.
        state: State the test ended in.
        failure_reason: The reason of the first failure.  Empty when the
            test did not fail.
        images_written: File names of every capture image saved.
        comparisons: One entry per captured image that was compared.
    """

    name: str
    state: VisualTestState
    failure_reason: str = ""
    images_written: list[str] = field(default_factory=list)
    comparisons: list[ImageComparison] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.state is VisualTestState.PASSED

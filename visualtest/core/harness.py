"""Top-level sequencer that runs visual tests against an engine.

The harness owns the simulated clock, the engine, the image store and
the ordered collection of tests.  ``initialize`` sets up the engine and
the output/golden directory roots; ``run_all_tests`` then runs every
registered test to completion, one at a time, in registration order.

Typical usage::

    harness = VisualTestHarness(get_default_settings())
    harness.create_test("Shapes/Base", load_shapes_scene)
    if harness.initialize():
        results = harness.run_all_tests()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from visualtest.config.settings import Settings
from visualtest.core.image_store import ImageStore
from visualtest.core.visual_test import SceneLoader, VisualTest, VisualTestBehavior
from visualtest.engine.interface import EngineInterface, create_engine
from visualtest.models.results import VisualTestResult
from visualtest.models.states import VisualTestState

logger = logging.getLogger(__name__)

# Smallest accepted engine time step, in seconds.
_MIN_TIME_STEP: float = 0.0001

_DEFAULT_OUTPUT_DIR: str = "Output"
_DEFAULT_GOLDEN_DIR: str = "Golden"

ErrorHandler = Callable[[str], None]


class VisualTestHarness:
    """Runs visual tests frame by frame against an engine.

    Args:
        settings: Harness configuration.  Defaults to ``Settings()``.
        engine: Engine backend.  Created from ``settings.engine_name``
            during ``initialize`` when omitted.
        image_store: File-system access for captures and golden images.
        on_error: Error-reporting hook receiving human-readable
            messages.  Defaults to logging at ERROR level.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        engine: EngineInterface | None = None,
        image_store: ImageStore | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._engine = engine
        self._image_store = image_store or ImageStore()
        self._on_error = on_error
        self._time_step: float = self._settings.time_step
        self._output_root: str = self._settings.output_root
        self._golden_root: str = self._settings.golden_root
        self._tests: list[VisualTest] = []
        self._errors: list[str] = []
        self._initialized: bool = False

    # ------------------------------------------------------------------
    # Services used by tests
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def engine(self) -> EngineInterface:
        if self._engine is None:
            raise RuntimeError("Harness not initialised.  Call initialize() first.")
        return self._engine

    @property
    def image_store(self) -> ImageStore:
        return self._image_store

    @property
    def errors(self) -> list[str]:
        """Every message reported through ``error`` so far."""
        return list(self._errors)

    def error(self, message: str) -> None:
        """Report a harness-level error.  Never aborts the run."""
        self._errors.append(message)
        if self._on_error is not None:
            self._on_error(message)
        else:
            logger.error(message)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    @property
    def time_step(self) -> float:
        """Simulated seconds advanced per engine frame."""
        return self._time_step

    def set_engine_time_step(self, step: float) -> None:
        self._time_step = max(_MIN_TIME_STEP, step)

    def set_engine_fps(self, fps: int) -> None:
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps!r}")
        self.set_engine_time_step(1.0 / float(fps))

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def output_root(self) -> str:
        return self._output_root

    @output_root.setter
    def output_root(self, path: str | Path) -> None:
        self._output_root = str(path)

    @property
    def golden_root(self) -> str:
        return self._golden_root

    @golden_root.setter
    def golden_root(self, path: str | Path) -> None:
        self._golden_root = str(path)

    def get_output_path(self, test: VisualTest, subpath: str = "") -> Path | None:
        """Output location for *test*, or ``None`` if no root is set.

        Returns ``<output_root>/<test name>`` or, with *subpath*,
        ``<output_root>/<test name>/<subpath>``.
        """
        if not self._output_root:
            return None
        path = Path(self._output_root) / test.name
        if subpath:
            path = path / subpath
        return path

    def get_golden_path(self, test: VisualTest, subpath: str = "") -> str:
        """Golden image path for *test*, relative to the golden roots."""
        if not subpath:
            return test.name
        return f"{test.name}/{subpath}"

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Create the engine and prepare the directory roots.

        Returns:
            ``True`` if the harness is ready to run tests.
        """
        if not self._setup_engine():
            return False
        if not self._setup_paths():
            return False
        self._initialized = True
        return True

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _setup_engine(self) -> bool:
        if self._engine is None:
            try:
                self._engine = create_engine(self._settings.engine_name)
            except NotImplementedError as exc:
                self.error(f"Engine creation failed: {exc}")
                return False

        if not self._engine.initialize():
            self.error("Engine initialization failed")
            return False

        logger.info("Engine: %s", self._engine.get_engine_name())
        return True

    def _setup_paths(self) -> bool:
        cwd = Path.cwd()
        if not self._output_root:
            self._output_root = str(cwd / _DEFAULT_OUTPUT_DIR)
        if not self._golden_root:
            self._golden_root = str(cwd / _DEFAULT_GOLDEN_DIR)

        output_root = Path(self._output_root)
        if not output_root.is_dir() and not self._image_store.ensure_directory(output_root):
            self.error(f"Couldn't create output directory {output_root}")
            return False

        # A missing golden root is legitimate when generating golden
        # data for the first time.
        golden_root = Path(self._golden_root)
        if not golden_root.is_dir():
            self.error(f"Specified golden root ({golden_root}) does not exist")

        self._image_store.mount_golden_root(golden_root)
        logger.info("Output root: %s", output_root)
        logger.info("Golden root: %s", golden_root)
        return True

    # ------------------------------------------------------------------
    # Tests
    # ------------------------------------------------------------------

    @property
    def tests(self) -> list[VisualTest]:
        """Registered tests in registration order."""
        return list(self._tests)

    def add_test(self, test: VisualTest) -> VisualTest:
        if not isinstance(test, VisualTest):
            raise TypeError(f"Expected a VisualTest, got {type(test).__name__}")
        self._tests.append(test)
        return test

    def create_test(
        self,
        name: str = "",
        scene_loader: SceneLoader | None = None,
        behavior: VisualTestBehavior | None = None,
        switches: list[str] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> VisualTest:
        """Create a test bound to this harness and register it.

        Args:
            name: Test name.
            scene_loader: Scene loader for the test.
            behavior: Optional lifecycle hooks.
            switches: Boolean switches to turn on.
            variables: Additional variables.

        Returns:
            The new, registered ``VisualTest``.
        """
        test = VisualTest(
            self,
            name=name,
            scene_loader=scene_loader,
            behavior=behavior,
            variables=variables,
        )
        for switch in switches or []:
            test.set_switch(switch)
        return self.add_test(test)

    @property
    def results(self) -> list[VisualTestResult]:
        """Outcome of every registered test, in registration order."""
        return [test.result for test in self._tests]

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run_all_tests(self) -> list[VisualTestResult]:
        """Run every registered test in order, one at a time."""
        for test in list(self._tests):
            self.run_one_test(test)
        return self.results

    def run_one_test(self, test: VisualTest) -> None:
        """Start *test* and step the engine until it passes or fails."""
        if not test.name:
            self.error("Can't run unnamed test")
            return

        if test.state is not VisualTestState.NOT_STARTED:
            self.error(f"Test ({test.name}) in invalid state, skipping")
            return

        if not self._initialized:
            self.error(f"Harness not initialised, can't run {test.name}")
            return

        logger.info("Starting %s", test.name)
        try:
            test.start()

            # The start frame samples the freshly loaded scene at t=0.
            time_step = 0.0
            while not test.is_complete:
                self.step_engine(time_step)
                time_step = self._time_step
        except Exception as exc:
            logger.exception("Unhandled exception in %s", test.name)
            test.fail(f"Unhandled exception: {exc}")

        logger.info("Finished %s: %s", test.name, test.state.value)

    def step_engine(self, time_step: float | None = None) -> None:
        """Run one engine frame.

        Args:
            time_step: Simulated seconds for this frame.  Defaults to
                the harness time step.
        """
        step = self._time_step if time_step is None else time_step
        self.engine.run_frame(step)

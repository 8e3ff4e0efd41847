"""Visual test harness command-line entry point.

Builds a harness from settings and CLI flags, registers one or more
test suites, runs every test and prints a summary.

Typical usage::

    python -m visualtest.main --suite visualtest.suites.shapes:create_shape_tests

Programmatic usage::

    from visualtest.main import build_harness

    harness = build_harness(settings)
    create_shape_tests(harness)
    if harness.initialize():
        results = harness.run_all_tests()

A suite is any callable taking the harness and registering tests on it,
referenced as ``package.module:function``.
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

from visualtest.config.settings import Settings, get_default_settings
from visualtest.core.harness import VisualTestHarness
from visualtest.models.results import VisualTestResult

logger = logging.getLogger(__name__)

SuiteFactory = Callable[[VisualTestHarness], None]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_harness(settings: Settings | None = None) -> VisualTestHarness:
    """Wire a harness for *settings*.

    The engine backend named in *settings* is created by
    ``VisualTestHarness.initialize``, which reports an unknown name
    through the error hook and returns ``False``.

    Args:
        settings: Harness configuration.  Defaults are used when omitted.

    Returns:
        A harness ready for tests to be registered and ``initialize``
        to be called.
    """
    return VisualTestHarness(settings=settings or get_default_settings())


def load_suite(reference: str) -> SuiteFactory:
    """Resolve a ``module:function`` reference to a suite factory.

    Raises:
        ValueError: If *reference* is not of the form ``module:function`` or
            does not name a callable.
        ImportError: If the module cannot be imported.
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Suite must be given as module:function, got {reference!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"Suite {reference!r} is not a callable")
    return factory


def load_settings(config_path: str, overrides: dict[str, Any]) -> Settings:
    """Load settings from an optional JSON file and apply *overrides*.

    Overrides whose value is ``None`` are ignored.

    Raises:
        OSError: If the config file cannot be read.
        ValueError: If the file is not a JSON object, or a value is out
            of range.
        TypeError: If a value has the wrong type.
    """
    data: dict[str, Any] = {}
    if config_path:
        with Path(config_path).open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
    settings = Settings.from_dict(data)
    explicit = {k: v for k, v in overrides.items() if v is not None}
    return replace(settings, **explicit)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visualtest",
        description=(
            "Visual test harness -- render scenes frame by frame, capture "
            "images and compare them against golden images."
        ),
    )
    parser.add_argument(
        "--suite",
        "-s",
        action="append",
        required=True,
        help="Suite to register, as module:function.  May be repeated.",
    )
    parser.add_argument(
        "--config",
        "-c",
        default="",
        help="JSON file with settings overrides.",
    )
    parser.add_argument("--output-root", default=None, help="Root for captured images.")
    parser.add_argument("--golden-root", default=None, help="Root for golden images.")
    parser.add_argument(
        "--fps",
        type=int,
        default=None,
        help="Simulated frames per second (default 60).",
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        default=None,
        help="Per-pixel colour distance tolerance (default 0: exact).",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Fraction of matching pixels required to pass (default 1.0).",
    )
    parser.add_argument(
        "--diff-images",
        action="store_true",
        default=None,
        help="Write a difference image next to every compared capture.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments, run the suites, and print results.

    Returns:
        Process exit code: ``0`` if every test passed, ``1`` otherwise,
        ``2`` if the harness could not be set up.
    """
    args = _build_parser().parse_args(argv)

    # -- Logging setup ---------------------------------------------------
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # -- Settings --------------------------------------------------------
    overrides: dict[str, Any] = {
        "output_root": args.output_root,
        "golden_root": args.golden_root,
        "time_step": (1.0 / args.fps) if args.fps else None,
        "pixel_match_tolerance": args.tolerance,
        "pass_threshold": args.threshold,
        "save_difference_images": args.diff_images,
    }
    try:
        settings = load_settings(args.config, overrides)
    except (OSError, TypeError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    # -- Build and register ----------------------------------------------
    harness = build_harness(settings)
    for suite_spec in args.suite:
        try:
            factory = load_suite(suite_spec)
        except (ImportError, ValueError) as exc:
            logger.error("Couldn't load suite %s: %s", suite_spec, exc)
            return 2
        factory(harness)

    if not harness.initialize():
        logger.error("Harness initialisation failed")
        return 2

    # -- Run -------------------------------------------------------------
    logger.info("Running %d test(s)", len(harness.tests))
    results = harness.run_all_tests()

    _print_result_summary(results)

    return 0 if all(result.passed for result in results) else 1


def _print_result_summary(results: list[VisualTestResult]) -> None:
    """Print a human-readable summary of every test result."""
    separator = "-" * 60
    print(separator)
    for result in results:
        status = "PASSED" if result.passed else "FAILED"
        print(f"{status:<7} {result.name}  ({len(result.images_written)} image(s))")
        if result.failure_reason:
            print(f"        {result.failure_reason}")
    passed = sum(1 for result in results if result.passed)
    print(separator)
    print(f"Passed: {passed}/{len(results)}")
    print(separator)


if __name__ == "__main__":
    sys.exit(main())

"""Configuration defaults for the visual test harness.

Provides the ``Settings`` dataclass that holds every tunable parameter
for the simulated clock, the output and golden directory roots, the
image comparison engine, and the engine backend.

Typical usage::

    from visualtest.config.settings import get_default_settings

    settings = get_default_settings()
    print(settings.time_step)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any


@dataclass(frozen=True)
class Settings:
    """Immutable configuration for a harness run.

    Attributes:
        time_step: Simulated seconds advanced per engine frame.  Tests
            run at a fixed step so results are reproducible.  The
            default corresponds to 60 frames per simulated second.
        output_root: Directory that receives one sub-directory of
            captured images per test.  Empty means ``<cwd>/Output``.
        golden_root: Directory holding the accepted reference images,
            laid out as ``<golden_root>/<test name>/<image file>``.
            Empty means ``<cwd>/Golden``.
        pixel_match_tolerance: Per-pixel colour distance below which
            two pixels count as matching.  ``0.0`` requires exact
            equality.
        pass_threshold: Fraction of matching pixels (0-1) an image must
            reach for the owning test to keep passing.
        enable_ssim: Whether to compute a structural similarity score
            for images that are not an exact match.
        ssim_block_size: Window size in pixels used by the SSIM
            estimator.
        save_difference_images: When True, a ``<stem>_diff.png`` image
            is written next to every capture that was compared.
        engine_name: Engine backend created by ``create_engine`` when no
            engine is injected into the harness.
    """

    # -- Simulated clock ------------------------------------------------------
    time_step: float = 1.0 / 60.0

    # -- Paths ----------------------------------------------------------------
    output_root: str = ""
    golden_root: str = ""

    # -- Image comparison -----------------------------------------------------
    pixel_match_tolerance: float = 0.0
    pass_threshold: float = 1.0
    enable_ssim: bool = True
    ssim_block_size: int = 8
    save_difference_images: bool = False

    # -- Engine ---------------------------------------------------------------
    engine_name: str = "headless"

    def __post_init__(self) -> None:
        if self.time_step <= 0.0:
            raise ValueError(f"time_step must be positive, got {self.time_step!r}")
        if self.pixel_match_tolerance < 0.0:
            raise ValueError(
                f"pixel_match_tolerance must be >= 0, got {self.pixel_match_tolerance!r}"
            )
        if not 0.0 <= self.pass_threshold <= 1.0:
            raise ValueError(
                f"pass_threshold must be within [0, 1], got {self.pass_threshold!r}"
            )
        if self.ssim_block_size <= 0:
            raise ValueError(
                f"ssim_block_size must be positive, got {self.ssim_block_size!r}"
            )

    # -- Factory & serialisation ----------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create a ``Settings`` instance from a plain dictionary.

        Unknown keys are silently ignored so that config files written
        for newer harness versions still load.

        Args:
            data: Dictionary whose keys correspond to ``Settings``
                field names.

        Returns:
            A new ``Settings`` instance populated from *data*, with
            defaults filling any missing keys.
        """
        known_names = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known_names}
        return cls(**filtered)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the settings to a plain dictionary."""
        return asdict(self)


def get_default_settings() -> Settings:
    """Return a ``Settings`` instance with all default values.

    Call ``Settings.from_dict`` or ``dataclasses.replace`` when you need
    to overlay overrides on top of the defaults.
    """
    return Settings()

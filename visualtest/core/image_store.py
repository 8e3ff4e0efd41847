"""File-system access for captured and golden images.

``ImageStore`` owns every disk operation the harness performs:
preparing per-test output directories, writing captured images in
their configured format, and resolving golden images relative to one or
more mounted golden roots.

OpenCV handles BMP, PNG and JPG.  TGA is not supported by OpenCV's
codecs, so those files go through Pillow.  Images are passed around as
``uint8`` arrays in OpenCV channel order (BGR or BGRA).

Typical usage::

    store = ImageStore()
    store.mount_golden_root(Path("Golden"))
    store.write_image(Path("Output/MyTest/shot.png"), image, CaptureFormat.PNG)
    golden = store.load_golden("MyTest/shot.png")
"""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np
from numpy.typing import NDArray
from PIL import Image

from visualtest.models.states import CaptureFormat

logger = logging.getLogger(__name__)


class ImageStore:
    """Reads and writes capture images and locates golden images."""

    def __init__(self) -> None:
        self._golden_roots: list[Path] = []

    # ------------------------------------------------------------------
    # Golden roots
    # ------------------------------------------------------------------

    def mount_golden_root(self, root: Path | str) -> None:
        """Add *root* to the directories searched by ``load_golden``.

        Roots mounted later take precedence over earlier ones.
        """
        path = Path(root)
        if path in self._golden_roots:
            self._golden_roots.remove(path)
        self._golden_roots.insert(0, path)

    @property
    def golden_roots(self) -> list[Path]:
        """Mounted golden roots, highest precedence first."""
        return list(self._golden_roots)

    def find_golden(self, relative_path: str) -> Path | None:
        """Return the first existing file for *relative_path*, or ``None``."""
        for root in self._golden_roots:
            candidate = root / relative_path
            if candidate.is_file():
                return candidate
        return None

    def load_golden(self, relative_path: str) -> NDArray[np.uint8] | None:
        """Load a golden image by its path relative to the golden roots.

        Returns:
            The decoded image, or ``None`` if no mounted root holds a
            readable file at *relative_path*.
        """
        path = self.find_golden(relative_path)
        if path is None:
            return None
        return self.read_image(path)

    # ------------------------------------------------------------------
    # Image I/O
    # ------------------------------------------------------------------

    def read_image(self, path: Path) -> NDArray[np.uint8] | None:
        """Decode the image at *path*, keeping any alpha channel.

        Returns:
            The image in OpenCV channel order, or ``None`` if the file
            is missing or cannot be decoded.
        """
        try:
            image_format = CaptureFormat.from_extension(path.suffix)
        except ValueError:
            logger.error("Unsupported image format: %s", path)
            return None

        if image_format is CaptureFormat.TGA:
            return self._read_with_pillow(path)

        image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if image is None:
            logger.error("Could not read image: %s", path)
        return image

    def write_image(
        self,
        path: Path,
        image: NDArray[np.uint8],
        image_format: CaptureFormat,
    ) -> bool:
        """Encode *image* to *path* in *image_format*.

        Alpha is dropped for formats that cannot store it.

        Returns:
            ``True`` if the file was written.
        """
        data = image
        if data.ndim == 3 and data.shape[2] == 4 and not image_format.supports_alpha:
            data = cv2.cvtColor(data, cv2.COLOR_BGRA2BGR)

        try:
            if image_format is CaptureFormat.TGA:
                self._write_with_pillow(path, data)
                return True
            return bool(cv2.imwrite(str(path), data))
        except (OSError, cv2.error) as exc:
            logger.error("Image write (%s) failed: %s", path, exc)
            return False

    @staticmethod
    def _read_with_pillow(path: Path) -> NDArray[np.uint8] | None:
        try:
            with Image.open(path) as pil_image:
                if pil_image.mode not in ("RGB", "RGBA"):
                    pil_image = pil_image.convert("RGBA")
                rgb = np.asarray(pil_image)
        except OSError as exc:
            logger.error("Could not read image %s: %s", path, exc)
            return None
        code = cv2.COLOR_RGBA2BGRA if rgb.shape[2] == 4 else cv2.COLOR_RGB2BGR
        return cv2.cvtColor(rgb, code)

    @staticmethod
    def _write_with_pillow(path: Path, image: NDArray[np.uint8]) -> None:
        if image.ndim == 2:
            Image.fromarray(image).save(path)
            return
        if image.shape[2] == 4:
            rgb = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
        else:
            rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        Image.fromarray(rgb).save(path)

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    @staticmethod
    def ensure_directory(path: Path) -> bool:
        """Create *path* and its parents if needed.

        Returns:
            ``True`` if the directory exists afterwards.
        """
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Couldn't create directory %s: %s", path, exc)
        return path.is_dir()

    @staticmethod
    def clean_directory(path: Path) -> bool:
        """Recursively delete every file below *path*.

        Sub-directories are kept.  A missing directory counts as clean.

        Returns:
            ``True`` if every file was deleted.
        """
        if not path.is_dir():
            return True

        for file_path in sorted(path.rglob("*")):
            if file_path.is_dir():
                continue
            try:
                file_path.unlink()
            except OSError as exc:
                logger.error("Couldn't delete %s: %s", file_path, exc)
                return False
        return True

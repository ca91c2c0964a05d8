"""
Layout Composer — arranges decoded images on one output canvas.

Policies:
    SINGLE   first image only
    ROW      left to right, equal heights
    COLUMN   top to bottom, equal widths
    GRID     near-square grid, black placeholders fill the unused cells
    OVERLAY  exactly two images alpha-blended at canvas size

Any arrangement that cannot be built raises LayoutError; the caller skips
that tick.
"""
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from bgremoval.core.events import LayoutPolicy, NormalizedImage, RenderBundle
from bgremoval.utils.constants import GRID_TOLERANCE
from bgremoval.utils.failures import LayoutError


def _ceil_with_tolerance(value: float, tolerance: float = GRID_TOLERANCE) -> int:
    """Round up, unless *value* is within *tolerance* above an integer."""
    whole = int(value)
    return whole if value - whole < tolerance else whole + 1


def grid_shape(count: int, tolerance: float = GRID_TOLERANCE) -> Tuple[int, int]:
    """
    Rows and columns of the grid holding *count* images.

    columns = ceil(sqrt(count)), rows = ceil(count / columns), where a
    fractional part under *tolerance* counts as zero. 4 → (2, 2), 5 → (2, 3).
    """
    if count < 1:
        raise LayoutError(f"Grid layout needs at least one image, got {count}")
    cols = _ceil_with_tolerance(math.sqrt(count), tolerance)
    rows = _ceil_with_tolerance(count / cols, tolerance)
    return rows, cols


class LayoutComposer:
    """Builds the output canvas for a RenderBundle."""

    def __init__(self, canvas_width: int, canvas_height: int):
        """
        Args:
            canvas_width: Window width; used for grid placeholders and overlay resize.
            canvas_height: Window height.
        """
        if canvas_width <= 0 or canvas_height <= 0:
            raise LayoutError(f"Invalid canvas size {canvas_width}x{canvas_height}")
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self._handlers: Dict[LayoutPolicy, Callable[[RenderBundle], NormalizedImage]] = {
            LayoutPolicy.SINGLE: self._single,
            LayoutPolicy.ROW: self._row,
            LayoutPolicy.COLUMN: self._column,
            LayoutPolicy.GRID: self._grid,
            LayoutPolicy.OVERLAY: self._overlay,
        }

    def resize(self, canvas_width: int, canvas_height: int) -> None:
        if canvas_width <= 0 or canvas_height <= 0:
            raise LayoutError(f"Invalid canvas size {canvas_width}x{canvas_height}")
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height

    def compose(self, bundle: RenderBundle) -> Optional[NormalizedImage]:
        """
        Arrange *bundle.images* under *bundle.policy*.

        Returns:
            The canvas, or None when there is nothing to render.

        Raises:
            LayoutError: wrong image count, mismatched sizes, bad image type,
                or an unknown policy.
        """
        handler = self._handlers.get(bundle.policy)
        if handler is None:
            raise LayoutError(f"Render type not supported: {bundle.policy!r}")

        if bundle.policy is not LayoutPolicy.OVERLAY and not bundle.images:
            return None

        for image in bundle.images:
            self._check_image(image)
        return handler(bundle)

    # ── Policies ─────────────────────────────────────────────────────

    def _single(self, bundle: RenderBundle) -> NormalizedImage:
        return bundle.images[0]

    def _row(self, bundle: RenderBundle) -> NormalizedImage:
        return self._hconcat(bundle.images)

    def _column(self, bundle: RenderBundle) -> NormalizedImage:
        return self._vconcat(bundle.images)

    def _grid(self, bundle: RenderBundle) -> NormalizedImage:
        images = list(bundle.images)
        rows, cols = grid_shape(len(images))
        cell_height = self.canvas_height // rows
        cell_width = self.canvas_width // cols

        strips: List[NormalizedImage] = []
        for r in range(rows):
            cells = []
            for c in range(cols):
                index = r * cols + c
                if index < len(images):
                    cells.append(images[index])
                else:
                    cells.append(np.zeros((cell_height, cell_width, 3), dtype=np.uint8))
            strips.append(self._hconcat(cells))
        return self._vconcat(strips)

    def _overlay(self, bundle: RenderBundle) -> NormalizedImage:
        if len(bundle.images) != 2:
            raise LayoutError(
                f"Overlay: unsupported input count {len(bundle.images)}, only two images can be blended"
            )
        alpha = float(bundle.alpha)
        if not 0.0 <= alpha <= 1.0:
            raise LayoutError(f"Overlay alpha must be within [0, 1], got {alpha}")

        size = (self.canvas_width, self.canvas_height)
        base = cv2.resize(bundle.images[0], size).astype(np.float64)
        overlay = cv2.resize(bundle.images[1], size).astype(np.float64)
        blended = base * (1.0 - alpha) + overlay * alpha
        return np.clip(np.trunc(blended), 0, 255).astype(np.uint8)

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _check_image(image) -> None:
        if not isinstance(image, np.ndarray) or image.dtype != np.uint8 \
                or image.ndim != 3 or image.shape[2] != 3:
            shape = getattr(image, 'shape', None)
            dtype = getattr(image, 'dtype', type(image).__name__)
            raise LayoutError(f"Expected a 3-channel uint8 image, got shape={shape} dtype={dtype}")

    @staticmethod
    def _hconcat(images: Sequence[NormalizedImage]) -> NormalizedImage:
        heights = {image.shape[0] for image in images}
        if len(heights) != 1:
            raise LayoutError(f"Row layout needs equal heights, got {sorted(heights)}")
        return images[0] if len(images) == 1 else cv2.hconcat(list(images))

    @staticmethod
    def _vconcat(images: Sequence[NormalizedImage]) -> NormalizedImage:
        widths = {image.shape[1] for image in images}
        if len(widths) != 1:
            raise LayoutError(f"Column layout needs equal widths, got {sorted(widths)}")
        return images[0] if len(images) == 1 else cv2.vconcat(list(images))

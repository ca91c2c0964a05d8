"""Object Tracker Handler — depth-band person segmentation seeded by face centers.

For every seed point the depth at that point defines a band; the connected
region of pixels inside the band that contains the seed is foreground.
Seeds are kept for a few frames after the detector loses the faces, so a
person turning away does not vanish immediately.
"""
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from bgremoval.utils.logger import Logger


class ObjectTrackerHandler:
    """ObjectTracker producing a uint8 foreground mask (0 / 255)."""

    def __init__(self, depth_tolerance: int = 40, min_depth: int = 1,
                 kernel_size: int = 7, hold_frames: int = 15, search_radius: int = 4):
        """
        Args:
            depth_tolerance: Half-width of the depth band around each seed (8-bit units).
            min_depth: Pixels below this value carry no depth and are never foreground.
            kernel_size: Elliptic kernel used to close holes and drop specks.
            hold_frames: Frames to keep using the last seeds once faces disappear.
            search_radius: Neighbourhood searched for a valid depth when the seed has none.
        """
        self.depth_tolerance = depth_tolerance
        self.min_depth = min_depth
        self.hold_frames = hold_frames
        self.search_radius = search_radius
        self.kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (kernel_size, kernel_size)) \
            if kernel_size > 1 else None
        self.logger = Logger("ObjectTrackerHandler")

        self._last_seeds: List[Tuple[int, int]] = []
        self._frames_without_seeds = 0

    def track_objects(self, depth_image: np.ndarray, points: Sequence[Tuple[int, int]]) -> np.ndarray:
        gray = depth_image if depth_image.ndim == 2 else cv2.cvtColor(depth_image, cv2.COLOR_BGR2GRAY)
        height, width = gray.shape
        mask = np.zeros((height, width), dtype=np.uint8)

        seeds = self._select_seeds(points)
        if not seeds:
            return mask

        valid = gray >= self.min_depth
        for x, y in seeds:
            if not (0 <= x < width and 0 <= y < height):
                continue
            seed_depth = self._seed_depth(gray, valid, x, y)
            if seed_depth is None:
                continue

            band = valid & (np.abs(gray.astype(np.int16) - seed_depth) <= self.depth_tolerance)
            _, labels = cv2.connectedComponents(band.astype(np.uint8), connectivity=8)
            label = self._seed_label(labels, x, y)
            if label == 0:
                continue
            mask[labels == label] = 255

        if self.kernel is not None and mask.any():
            mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, self.kernel, iterations=2)
            mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, self.kernel, iterations=1)
        return mask

    def reset(self) -> None:
        self._last_seeds = []
        self._frames_without_seeds = 0

    def _select_seeds(self, points: Sequence[Tuple[int, int]]) -> List[Tuple[int, int]]:
        if points:
            self._last_seeds = [(int(x), int(y)) for x, y in points]
            self._frames_without_seeds = 0
            return self._last_seeds

        self._frames_without_seeds += 1
        if self._frames_without_seeds > self.hold_frames:
            self._last_seeds = []
        return self._last_seeds

    def _seed_label(self, labels: np.ndarray, x: int, y: int) -> int:
        """Component under the seed, else the most common one around it (0 if none)."""
        if labels[y, x]:
            return int(labels[y, x])
        r = self.search_radius
        window = labels[max(y - r, 0):y + r + 1, max(x - r, 0):x + r + 1]
        candidates = window[window != 0]
        if candidates.size == 0:
            return 0
        return int(np.bincount(candidates.ravel()).argmax())

    def _seed_depth(self, gray: np.ndarray, valid: np.ndarray, x: int, y: int) -> Optional[int]:
        """Depth under the seed, or the median of valid neighbours when it has none."""
        if valid[y, x]:
            return int(gray[y, x])

        r = self.search_radius
        window = gray[max(y - r, 0):y + r + 1, max(x - r, 0):x + r + 1]
        window_valid = valid[max(y - r, 0):y + r + 1, max(x - r, 0):x + r + 1]
        if not window_valid.any():
            return None
        return int(np.median(window[window_valid]))

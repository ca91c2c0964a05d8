"""
Display Handler — OpenCV HighGUI window used as the display sink.

Must be driven from the main thread: HighGUI only pumps window events
inside waitKey(), which poll_key() calls once per render tick.
"""
from typing import Optional

import cv2
import numpy as np

from bgremoval.utils.constants import KEY_NONE
from bgremoval.utils.logger import Logger


class DisplayHandler:
    """Shows canvases in a resizable window and reports key presses.

    Implements the DisplaySink protocol:
        show(title, image) -> None
        poll_key() -> int
        is_open() -> bool
        close() -> None
    """

    def __init__(self, width: int = 0, height: int = 0, poll_delay_ms: int = 1):
        """
        Args:
            width: Initial window width in pixels (0 keeps the image size).
            height: Initial window height in pixels.
            poll_delay_ms: How long waitKey() pumps events per poll.
        """
        self.width = width
        self.height = height
        self.poll_delay_ms = max(int(poll_delay_ms), 1)
        self.logger = Logger("DisplayHandler")
        self._title: Optional[str] = None
        self._closed = False

    def show(self, title: str, image: np.ndarray) -> None:
        if self._closed:
            return
        if self._title != title:
            self._create_window(title)
        cv2.imshow(title, image)

    def poll_key(self) -> int:
        """Pump window events and return the pressed key code, or -1."""
        if self._closed:
            return KEY_NONE
        key = cv2.waitKey(self.poll_delay_ms)
        return KEY_NONE if key == -1 else key & 0xFF

    def is_open(self) -> bool:
        """False once closed, or once the user closed the window."""
        if self._closed:
            return False
        if self._title is None:
            return True
        try:
            return cv2.getWindowProperty(self._title, cv2.WND_PROP_VISIBLE) >= 1
        except cv2.error:
            return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            cv2.destroyAllWindows()
        except cv2.error as e:
            self.logger.warning(f"Error while closing windows: {e}")
        self.logger.info("Display closed")

    def _create_window(self, title: str) -> None:
        if self._title is not None:
            cv2.destroyWindow(self._title)
        cv2.namedWindow(title, cv2.WINDOW_NORMAL)
        if self.width > 0 and self.height > 0:
            cv2.resizeWindow(title, self.width, self.height)
        self._title = title
        self.logger.info(f"Window created: {title}")

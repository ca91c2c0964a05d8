"""
Global constants for the background removal node.
"""
from pathlib import Path

# Project Structure
PACKAGE_DIR = Path(__file__).parent.parent
CONFIGS_DIR = PACKAGE_DIR / "configs"
LOGS_DIR = PACKAGE_DIR.parent / "logs"
LOG_FILE_NAME = "bgremoval.log"

# Sensor defaults
DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480
DEFAULT_FPS = 30
DEFAULT_WAIT_TIMEOUT_MS = 100
DEFAULT_DEPTH_BIT_DEPTH = 12

# Decoder
MIN_FRAME_BYTES = 1024
DEPTH_BASELINE_BITS = 10
INFRARED_BASELINE_BITS = 8

# Layout
GRID_TOLERANCE = 0.01

# Display
DEFAULT_WINDOW_TITLE = "Multiple-Person Background Removal"
GREEN_SCREEN_COLOR = (64, 177, 0)  # BGR
INFO_FONT_COLOR = (255, 0, 255)
FACE_MARKER_COLOR = (0, 255, 0)

# Keys
KEY_NONE = -1
KEY_ESC = 27
QUIT_KEYS = (KEY_ESC, ord('q'), ord('Q'))
INFO_KEYS = (ord('i'), ord('I'))

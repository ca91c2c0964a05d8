"""
BG Removal Node — Entry Point

Two contexts around a single-slot mailbox:
    AcquisitionStage (thread) → [FrameMailbox] → RenderStage (main thread)
                                                    ├─ PixelDecoder
                                                    ├─ FaceDetector → ObjectTracker
                                                    └─ LayoutComposer → DisplaySink
Control plane (EventBus): DeviceFailed, ShutdownRequested, DiagnosticsToggled
"""
import sys
import signal
import argparse
from threading import Event
from typing import Optional

from bgremoval.utils.config import Config
from bgremoval.utils.failures import ConfigError, DeviceError, FailureManager
from bgremoval.utils.frame_rate import FrameRateTracker
from bgremoval.utils.logger import Logger
from bgremoval.utils.constants import (
    DEFAULT_HEIGHT, DEFAULT_WAIT_TIMEOUT_MS, DEFAULT_WIDTH,
    DEFAULT_WINDOW_TITLE, GREEN_SCREEN_COLOR,
)

from bgremoval.core.bus import EventBus
from bgremoval.core.decoder import PixelDecoder
from bgremoval.core.events import ControlEvent, DiagnosticsToggled, ShutdownRequested
from bgremoval.core.layout import LayoutComposer
from bgremoval.core.mailbox import FrameMailbox
from bgremoval.core.protocols import DeviceService, DisplaySink, FaceDetector, ObjectTracker
from bgremoval.core.stages import AcquisitionStage, RenderStage

# Output canvas holds color | output | depth side by side
CANVAS_COLUMNS = 3


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="BG Removal Node - live multi-person background removal")
    parser.add_argument(
        '--video', '-v',
        type=str,
        default=None,
        help='Path to a color video to replay (bypasses the depth camera)'
    )
    parser.add_argument(
        '--depth-video',
        type=str,
        default=None,
        help='Grayscale depth video replayed alongside --video'
    )
    parser.add_argument(
        '--config', '-c',
        type=str,
        default=None,
        help='Extra JSON config merged over the defaults'
    )
    parser.add_argument(
        '--no-ai',
        action='store_true',
        help='Do not load the face model (the tracker gets no seed points)'
    )
    parser.add_argument(
        '--show-info',
        action='store_true',
        help='Start with the frame info overlay enabled (toggle with "i")'
    )
    return parser.parse_args(argv)


class BackgroundRemovalNode:
    """
    Orchestrator.

    Owns the quit signal and the mailbox and hands them to the two stages.
    Collaborators (device, detector, tracker, display) are built from config
    unless passed in.
    """

    def __init__(
        self,
        video_path: Optional[str] = None,
        depth_video_path: Optional[str] = None,
        config_path: Optional[str] = None,
        enable_ai: bool = True,
        show_info: bool = False,
        config: Optional[Config] = None,
        device: Optional[DeviceService] = None,
        detector: Optional[FaceDetector] = None,
        tracker: Optional[ObjectTracker] = None,
        display: Optional[DisplaySink] = None,
    ):
        # ── 1. Foundation ────────────────────────────────────────────
        self.config = config or Config(user_file=config_path)
        Logger.setup(self.config.get('logging', {}))
        self.logger = Logger("BackgroundRemovalNode")
        self.logger.info("Initializing BG Removal Node...")

        self.video_path = video_path
        self.depth_video_path = depth_video_path

        # Set once by the render loop, never cleared
        self.quit_event = Event()
        self.bus = EventBus()
        self.mailbox = FrameMailbox()
        self.failure_manager = FailureManager(self.config.get('failures', {}))
        self.frame_rates = FrameRateTracker()
        self._stopped = False

        width = self.config.get_int('camera.width', DEFAULT_WIDTH)
        height = self.config.get_int('camera.height', DEFAULT_HEIGHT)

        # ── 2. Collaborators ─────────────────────────────────────────
        self.device = device or self._create_device()
        if detector is None and enable_ai:
            detector = self._load_face_detector()
        elif not enable_ai:
            self.logger.info("Face detection disabled")
        self.detector = detector
        self.tracker = tracker or self._create_tracker()

        if display is None:
            from bgremoval.Handlers.Display_Handler import DisplayHandler
            display = DisplayHandler(width=width * CANVAS_COLUMNS, height=height)
        self.display = display

        # ── 3. Stages ────────────────────────────────────────────────
        self.acquisition_stage = AcquisitionStage(
            device=self.device,
            mailbox=self.mailbox,
            quit_event=self.quit_event,
            bus=self.bus,
            wait_timeout_ms=self.config.get_int('camera.wait_timeout_ms', DEFAULT_WAIT_TIMEOUT_MS),
        )

        self.render_stage = RenderStage(
            mailbox=self.mailbox,
            quit_event=self.quit_event,
            decoder=PixelDecoder(),
            composer=LayoutComposer(width * CANVAS_COLUMNS, height),
            detector=self.detector,
            tracker=self.tracker,
            display=self.display,
            bus=self.bus,
            failure_manager=self.failure_manager,
            frame_rates=self.frame_rates,
            window_title=self.config.get('display.window_title', DEFAULT_WINDOW_TITLE),
            show_info=show_info or self.config.get_bool('display.show_info', False),
            green_screen_color=tuple(self.config.get('display.green_screen_color', GREEN_SCREEN_COLOR)),
        )
        self.bus.subscribe(ControlEvent, self._log_event)
        self.bus.subscribe(DiagnosticsToggled, self._on_diagnostics_toggled)

        self.logger.info("BG Removal Node initialized successfully")

    def _create_device(self) -> DeviceService:
        camera_conf = self.config.get('camera', {})
        if self.video_path:
            from bgremoval.Handlers.Video_Input_Handler import VideoInputHandler
            self.logger.info(f"Video replay mode: {self.video_path}")
            return VideoInputHandler(self.video_path, self.depth_video_path, camera_conf)

        from bgremoval.Handlers.Orbbec_Handler import OrbbecDeviceHandler
        return OrbbecDeviceHandler(camera_conf)

    def _create_tracker(self) -> ObjectTracker:
        from bgremoval.Handlers.Object_Tracker_Handler import ObjectTrackerHandler
        return ObjectTrackerHandler(
            depth_tolerance=self.config.get_int('detection.tracker.depth_tolerance', 40),
            min_depth=self.config.get_int('detection.tracker.min_depth', 1),
            kernel_size=self.config.get_int('detection.tracker.kernel_size', 7),
        )

    def _load_face_detector(self) -> Optional[FaceDetector]:
        """Load the YOLO face model named in config."""
        model_conf = self.config.get('detection.face_model', {})
        if not model_conf.get('enabled', False) or not model_conf.get('path'):
            self.logger.info("Face model not configured, tracking without seeds")
            return None

        from bgremoval.Handlers.Model_Loader_Handler import ModelLoader
        from bgremoval.Handlers.Face_Detection_Handler import FaceDetectionHandler

        loader = ModelLoader()
        warmup = (
            self.config.get_int('camera.width', DEFAULT_WIDTH),
            self.config.get_int('camera.height', DEFAULT_HEIGHT),
        )
        model = loader.load_model(model_conf['path'], warmup_size=warmup)
        if model is None:
            self.logger.warning("No face model loaded, tracking without seeds")
            return None

        return FaceDetectionHandler(
            model,
            confidence=float(model_conf.get('confidence', 0.5)),
            device=loader.device,
            max_faces=int(model_conf.get('max_faces', 0)),
        )

    def _setup_signals(self):
        """Handle OS signals for graceful shutdown."""
        def handler(sig, frame):
            self.logger.info("Shutdown signal received")
            self.bus.publish(ShutdownRequested(reason=f"signal {sig}"))
        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def _log_event(self, event: ControlEvent) -> None:
        self.logger.info(f"Control event: {event}")

    def _on_diagnostics_toggled(self, event: DiagnosticsToggled) -> None:
        self.config.set('display.show_info', event.enabled)

    def start(self, install_signal_handlers: bool = True) -> int:
        """
        Run until quit.

        Returns:
            Process exit status (0 on a normal quit, 1 if the device did not start).

        Raises:
            DeviceError: the device failed while streaming (after shutdown).
        """
        self.logger.info("Starting BG Removal Node...")
        if install_signal_handlers:
            self._setup_signals()

        try:
            started = self.device.start()
        except DeviceError:
            self.stop()
            raise
        if not started:
            self.logger.error("Device failed to start")
            self.stop()
            return 1

        self.acquisition_stage.start()
        try:
            # Render loop blocks on the main thread
            self.render_stage.run()
        finally:
            self.stop()

        if self.acquisition_stage.error is not None:
            raise self.acquisition_stage.error
        return 0

    def stop(self):
        """Gracefully shutdown all components."""
        if self._stopped:
            return
        self._stopped = True

        self.quit_event.set()
        self.logger.info("Stopping BG Removal Node...")

        if self.acquisition_stage.is_alive():
            timeout = 2.0 + self.acquisition_stage.wait_timeout_ms / 1000.0
            self.acquisition_stage.join(timeout=timeout)
            if self.acquisition_stage.is_alive():
                self.logger.warning("Acquisition stage did not stop in time")
        elif self.acquisition_stage.ident is None:
            # Never started: release the device here
            self.device.stop()

        if self.display:
            self.display.close()

        self.bus.clear()
        self.logger.info(f"BG Removal Node stopped (mailbox: {self.mailbox.stats()})")


def main(argv=None) -> int:
    args = parse_args(argv)
    logger = Logger("main")

    try:
        node = BackgroundRemovalNode(
            video_path=args.video,
            depth_video_path=args.depth_video,
            config_path=args.config,
            enable_ai=not args.no_ai,
            show_info=args.show_info,
        )
        return node.start()
    except DeviceError as e:
        logger.critical(f"Device error: {e}")
        print(e.report(), file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Render Stage — the consumer context, run on the main thread.

Each tick drains the mailbox, decodes the pair, runs face detection on the
color image and object tracking on the depth image, builds the green-screen
output and shows {color, output, depth} side by side. When no new pair has
arrived the last canvas is shown again. Per-tick failures are recorded and
the tick's output is skipped.
"""
from threading import Event
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
import supervision as sv

from bgremoval.core.bus import EventBus
from bgremoval.core.decoder import PixelDecoder
from bgremoval.core.events import (
    DeviceFailed, DiagnosticsToggled, FramePair, LayoutPolicy,
    NormalizedImage, RawFrame, RenderBundle, ShutdownRequested, StreamKind,
)
from bgremoval.core.layout import LayoutComposer
from bgremoval.core.mailbox import FrameMailbox
from bgremoval.core.protocols import DisplaySink, FaceDetector, ObjectTracker, Point
from bgremoval.utils.constants import (
    DEFAULT_WINDOW_TITLE, FACE_MARKER_COLOR, GREEN_SCREEN_COLOR,
    INFO_FONT_COLOR, INFO_KEYS, KEY_NONE, QUIT_KEYS,
)
from bgremoval.utils.failures import BgRemovalError, FailureManager
from bgremoval.utils.frame_rate import FrameRateTracker, ProcessingTimer
from bgremoval.utils.logger import Logger


class RenderStage:
    """
    Consumer context.

    Owns the diagnostics toggle and the last rendered canvas. It is the only
    place the quit signal is set: on a quit key, a closed window, a shutdown
    request or a device failure reported by the acquisition thread.
    """

    def __init__(
        self,
        mailbox: FrameMailbox,
        quit_event: Event,
        decoder: PixelDecoder,
        composer: LayoutComposer,
        tracker: ObjectTracker,
        display: DisplaySink,
        detector: Optional[FaceDetector] = None,
        bus: Optional[EventBus] = None,
        failure_manager: Optional[FailureManager] = None,
        frame_rates: Optional[FrameRateTracker] = None,
        window_title: str = DEFAULT_WINDOW_TITLE,
        show_info: bool = False,
        green_screen_color: Tuple[int, int, int] = GREEN_SCREEN_COLOR,
    ):
        """
        Args:
            mailbox: Handoff slot filled by the AcquisitionStage.
            quit_event: Shared quit signal.
            decoder: RawFrame → NormalizedImage converter.
            composer: Canvas builder.
            tracker: Produces the foreground mask from the depth image.
            display: Window the canvas is shown in; also the key source.
            detector: Face detector; None means the tracker gets no seed points.
            bus: Event bus for shutdown requests and device failures.
            failure_manager: Records per-tick failures.
            frame_rates: Per-stream arrival-rate bookkeeping.
            window_title: Title passed to the display.
            show_info: Start with the frame info overlay enabled.
            green_screen_color: BGR fill for the background of the output image.
        """
        self.mailbox = mailbox
        self.quit_event = quit_event
        self.decoder = decoder
        self.composer = composer
        self.detector = detector
        self.tracker = tracker
        self.display = display
        self.bus = bus
        self.failure_manager = failure_manager or FailureManager()
        self.frame_rates = frame_rates or FrameRateTracker()
        self.window_title = window_title
        self.green_screen_color = tuple(int(c) for c in green_screen_color)
        self.logger = Logger("RenderStage")

        self._show_info = show_info
        self._timer = ProcessingTimer()
        self._last_canvas: Optional[NormalizedImage] = None
        self._quit_reason: Optional[str] = None
        self._face_annotator = sv.DotAnnotator(
            color=sv.Color(r=FACE_MARKER_COLOR[2], g=FACE_MARKER_COLOR[1], b=FACE_MARKER_COLOR[0]),
            radius=6,
        )
        self.frames_rendered = 0

        if self.bus is not None:
            self.bus.subscribe(DeviceFailed, self._on_device_failed)
            self.bus.subscribe(ShutdownRequested, self._on_shutdown_requested)

    # ── Public API ───────────────────────────────────────────────────

    @property
    def show_info(self) -> bool:
        return self._show_info

    @property
    def last_canvas(self) -> Optional[NormalizedImage]:
        return self._last_canvas

    @property
    def quit_reason(self) -> Optional[str]:
        return self._quit_reason

    def run(self) -> None:
        """Render until the quit signal is set."""
        self.logger.info("Render stage running")

        while not self.quit_event.is_set():
            if self._apply_pending_quit():
                break
            self.tick()
            self.poll_input()

        self.logger.info(
            f"Render stage stopped after {self.frames_rendered} frame(s)"
            f" ({self.quit_reason or 'quit signal'})"
        )

    def tick(self) -> Optional[NormalizedImage]:
        """
        Render one frame.

        Returns:
            The canvas that was shown, or None if nothing was shown.
        """
        pair = self.mailbox.take_if_present()

        if pair is None:
            images = [self._last_canvas] if self._last_canvas is not None else []
            bundle = RenderBundle(images=images, policy=LayoutPolicy.SINGLE)
        else:
            bundle = self.process_pair(pair)
            if bundle is None:
                return None

        try:
            canvas = self.composer.compose(bundle)
        except BgRemovalError as e:
            self.failure_manager.record_failure(e)
            return None

        if canvas is None:
            return None

        self.display.show(self.window_title, canvas)
        if pair is not None:
            self._last_canvas = canvas
            self.frames_rendered += 1
        return canvas

    def process_pair(self, pair: FramePair) -> Optional[RenderBundle]:
        """Decode, detect, track and build the {color, output, depth} bundle."""
        self._timer.start()

        decoded = self.decoder.decode_frames(pair.frames, on_error=self.failure_manager.record_failure)
        if len(decoded) != 2:
            self._timer.stop()
            return None
        (color_frame, color), (depth_frame, depth) = decoded

        for frame, _ in decoded:
            self.frame_rates.record(frame.kind)

        faces = list(self.detector.detect_faces(color)) if self.detector is not None else []
        mask = self.tracker.track_objects(depth, faces)
        output = self.build_output(color, mask)
        self._timer.stop()

        color = self._mark_faces(color, faces, self._timer.fps())
        if self._show_info:
            self._draw_info(color, color_frame, self.frame_rates.average_fps(color_frame.kind))
            self._draw_info(depth, depth_frame, self.frame_rates.average_fps(depth_frame.kind))

        cv2.putText(depth, "Depth", (5, 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 255, 0), 2)
        cv2.putText(output, "Output", (5, 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 0), 2)

        return RenderBundle(images=[color, output, depth], policy=LayoutPolicy.ROW)

    def build_output(self, color: NormalizedImage, mask: np.ndarray) -> NormalizedImage:
        """Color pixels where *mask* is set, solid green screen everywhere else."""
        if mask.ndim == 3:
            mask = mask[..., 0]
        height, width = color.shape[:2]
        if mask.shape != (height, width):
            mask = cv2.resize(mask, (width, height), interpolation=cv2.INTER_NEAREST)

        output = np.empty_like(color)
        output[:] = self.green_screen_color
        foreground = mask != 0
        output[foreground] = color[foreground]
        return output

    def poll_input(self) -> None:
        """Read one key from the display and react to it."""
        self.handle_key(self.display.poll_key())
        if not self.display.is_open():
            self.request_quit("window closed")

    def handle_key(self, key: int) -> None:
        if key == KEY_NONE:
            return
        if key in QUIT_KEYS:
            self.request_quit("quit key")
        elif key in INFO_KEYS:
            self.toggle_info()

    def toggle_info(self) -> bool:
        self._show_info = not self._show_info
        self.logger.info(f"Frame info overlay {'on' if self._show_info else 'off'}")
        if self.bus is not None:
            self.bus.publish(DiagnosticsToggled(enabled=self._show_info))
        return self._show_info

    def request_quit(self, reason: str) -> None:
        """Set the quit signal from the render loop's own thread."""
        self._defer_quit(reason)
        self.quit_event.set()

    # ── Bus handlers (may run on other threads) ──────────────────────

    def _on_device_failed(self, event: DeviceFailed) -> None:
        self._defer_quit(f"device failure: {event.error}")

    def _on_shutdown_requested(self, event: ShutdownRequested) -> None:
        self._defer_quit(event.reason)

    def _defer_quit(self, reason: str) -> None:
        # Lock-free: also reached from signal handlers interrupting the loop.
        if self._quit_reason is None:
            self._quit_reason = reason

    def _apply_pending_quit(self) -> bool:
        if self.quit_reason is None:
            return False
        self.quit_event.set()
        return True

    # ── Drawing ──────────────────────────────────────────────────────

    def _mark_faces(self, image: NormalizedImage, faces: Sequence[Point], fps: float) -> NormalizedImage:
        """Dot every face center and print the processing rate."""
        if faces:
            centers = np.asarray(faces, dtype=float).reshape(-1, 2)
            markers = sv.Detections(
                xyxy=np.hstack([centers, centers]),
                class_id=np.zeros(len(centers), dtype=int),
            )
            image = self._face_annotator.annotate(scene=image, detections=markers)
        if fps > 0:
            cv2.putText(image, f"FPS: {fps:.1f}", (5, image.shape[0] - 10),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, FACE_MARKER_COLOR, 1, cv2.LINE_AA)
        return image

    @staticmethod
    def _draw_info(image: NormalizedImage, frame: RawFrame, average_fps: int) -> None:
        """Stream label, timestamps and average stream rate in the top-left corner."""
        if frame.kind is StreamKind.COLOR:
            label = f"Color-{frame.fmt.value}"
        elif frame.kind is StreamKind.DEPTH:
            label = "Depth"
        else:
            label = "IR"

        lines = [label]
        if frame.device_timestamp:
            lines.append(f"Timestamp: {int(frame.device_timestamp)}")
        lines.append(f"System timestamp: {int(frame.timestamp)}")
        if average_fps:
            lines.append(f"Frame rate: {average_fps}")

        for i, text in enumerate(lines):
            cv2.putText(image, text, (8, 40 + 24 * i), cv2.FONT_HERSHEY_SIMPLEX,
                        0.6, INFO_FONT_COLOR, 1)

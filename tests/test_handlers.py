"""
Tests for the device, detection and display handlers that run without hardware.
"""
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest
import supervision as sv

from bgremoval.core.decoder import PixelDecoder
from bgremoval.core.events import PixelFormat, StreamKind
from bgremoval.core.protocols import DeviceService, DisplaySink, FaceDetector, ObjectTracker
from bgremoval.utils.constants import KEY_NONE
from bgremoval.utils.failures import DeviceError
from bgremoval.Handlers.Display_Handler import DisplayHandler
from bgremoval.Handlers.Face_Detection_Handler import FaceDetectionHandler, detection_centers
from bgremoval.Handlers.Object_Tracker_Handler import ObjectTrackerHandler
from bgremoval.Handlers.Orbbec_Handler import ORBBEC_AVAILABLE, OrbbecDeviceHandler, frame_bit_depth, frame_to_raw
from bgremoval.Handlers.Video_Input_Handler import VideoInputHandler


def gradient_image(height=48, width=64):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[..., 0] = np.arange(width, dtype=np.uint8)[None, :]
    image[..., 1] = 50
    image[..., 2] = np.arange(height, dtype=np.uint8)[:, None]
    return image


class TestVideoInputHandler:
    """Recorded video replayed as a DeviceService."""

    def test_implements_device_service(self):
        assert isinstance(VideoInputHandler("missing.mp4"), DeviceService)

    def test_missing_file_fails_to_start(self, tmp_path):
        handler = VideoInputHandler(str(tmp_path / "missing.mp4"))
        assert handler.start() is False

    def test_not_started_returns_nothing(self):
        handler = VideoInputHandler("missing.mp4")
        assert handler.wait_for_pair(1) is None

    def test_pair_decodes_back_to_source(self):
        """Color and depth survive packing and decoding unchanged."""
        handler = VideoInputHandler("missing.mp4", config={"depth_bit_depth": 12})
        color = gradient_image()
        depth = np.tile(np.arange(64, dtype=np.uint8) * 3, (48, 1))

        pair = handler.make_pair(color, depth)
        decoder = PixelDecoder()

        assert pair.color.fmt is PixelFormat.RGB888
        assert pair.depth.fmt is PixelFormat.Y16
        assert pair.depth.bit_depth == 12
        assert np.array_equal(decoder.decode(pair.color), color)
        assert np.array_equal(decoder.decode(pair.depth)[..., 0], depth)

    def test_depth_from_color_luma(self):
        handler = VideoInputHandler("missing.mp4")
        color = gradient_image()

        pair = handler.make_pair(color, color)
        decoded = PixelDecoder().decode(pair.depth)

        assert np.array_equal(decoded[..., 0], cv2.cvtColor(color, cv2.COLOR_BGR2GRAY))

    def test_reads_from_capture(self):
        handler = VideoInputHandler("missing.mp4", config={"fps": 1000})
        handler.cap = MagicMock()
        handler.cap.read.return_value = (True, gradient_image())
        handler.cap.get.return_value = 40.0

        pair = handler.wait_for_pair(100)

        assert pair is not None
        assert pair.color.kind is StreamKind.COLOR
        assert pair.depth.kind is StreamKind.DEPTH
        assert pair.color.device_timestamp == 40.0

    @pytest.mark.parametrize("loop, finished", [(True, False), (False, True)])
    def test_end_of_video(self, loop, finished):
        handler = VideoInputHandler("missing.mp4", config={"fps": 1000, "loop_video": loop})
        handler.cap = MagicMock()
        handler.cap.read.return_value = (False, None)

        assert handler.wait_for_pair(100) is None
        assert handler.finished is finished
        if loop:
            handler.cap.set.assert_called_once_with(cv2.CAP_PROP_POS_FRAMES, 0)

    def test_stop_releases_capture(self):
        handler = VideoInputHandler("missing.mp4")
        cap = MagicMock()
        handler.cap = cap

        handler.stop()

        cap.release.assert_called_once()
        assert handler.cap is None


class TestFaceDetection:
    """Detections reduced to seed points."""

    def test_detection_centers(self):
        detections = sv.Detections(xyxy=np.array([[0, 0, 10, 10], [10, 20, 30, 40]], dtype=float))
        assert detection_centers(detections) == [(5, 5), (20, 30)]

    def test_no_detections(self):
        assert detection_centers(sv.Detections.empty()) == []

    def test_detect_faces_returns_centers(self):
        handler = FaceDetectionHandler(model=MagicMock())
        handler.detect = MagicMock(return_value=sv.Detections(
            xyxy=np.array([[4, 4, 8, 12]], dtype=float),
            confidence=np.array([0.9]),
        ))

        assert handler.detect_faces(np.zeros((20, 20, 3), dtype=np.uint8)) == [(6, 8)]
        assert isinstance(handler, FaceDetector)

    def test_tracker_protocol(self):
        assert isinstance(ObjectTrackerHandler(), ObjectTracker)


class FakeSdkFrame:
    def __init__(self, data, fmt="OBFormat.RGB", width=32, height=24):
        self._data = data
        self._fmt = fmt
        self._width = width
        self._height = height

    def get_format(self):
        return self._fmt

    def get_data(self):
        return self._data

    def get_width(self):
        return self._width

    def get_height(self):
        return self._height

    def get_system_timestamp(self):
        return 1234

    def get_timestamp(self):
        return 99


class TestOrbbecHandler:
    """SDK-independent parts of the Orbbec adapter."""

    def test_frame_to_raw_color(self):
        frame = FakeSdkFrame(np.zeros(32 * 24 * 3, dtype=np.uint8))
        raw = frame_to_raw(frame, StreamKind.COLOR, 12)

        assert raw.fmt is PixelFormat.RGB888
        assert raw.bit_depth == 8
        assert raw.size == 32 * 24 * 3
        assert raw.timestamp == 1234.0
        assert raw.device_timestamp == 99.0

    def test_frame_to_raw_depth_keeps_bit_depth(self):
        frame = FakeSdkFrame(np.zeros(32 * 24 * 2, dtype=np.uint8), fmt="OBFormat.Y16")
        raw = frame_to_raw(frame, StreamKind.DEPTH, 12)

        assert raw.fmt is PixelFormat.Y16
        assert raw.bit_depth == 12

    def test_depth_bit_size_reported_by_frame_wins(self):
        """A 10-bit device is not scaled as if it were 12-bit."""
        frame = FakeSdkFrame(np.full(32 * 24, 200, dtype=np.uint16).view(np.uint8), fmt="OBFormat.Y16")
        frame.get_pixel_available_bit_size = lambda: 10

        raw = frame_to_raw(frame, StreamKind.DEPTH, 12)

        assert raw.bit_depth == 10
        assert np.all(PixelDecoder().decode(raw) == 200)

    def test_unreported_bit_size_uses_fallback(self):
        frame = FakeSdkFrame(np.zeros(32 * 24 * 2, dtype=np.uint8), fmt="OBFormat.Y16")
        frame.get_pixel_available_bit_size = lambda: 0

        assert frame_bit_depth(frame, 12) == 12

    def test_sdk_exceptions_become_device_errors(self):
        def failing(timeout):
            raise RuntimeError("wait failed")

        with pytest.raises(DeviceError) as excinfo:
            OrbbecDeviceHandler._call("Pipeline.wait_for_frames", "timeout_ms=100", failing, 100)

        assert excinfo.value.name == "Pipeline.wait_for_frames"
        assert excinfo.value.category == "RuntimeError"
        assert "Function:Pipeline.wait_for_frames" in excinfo.value.report()

    def test_wait_without_pipeline(self):
        handler = OrbbecDeviceHandler({})
        assert handler.wait_for_pair(1) is None
        handler.stop()

    @pytest.mark.skipif(ORBBEC_AVAILABLE, reason="pyorbbecsdk is installed")
    def test_start_without_sdk(self):
        assert OrbbecDeviceHandler({}).start() is False


class TestDisplayHandler:
    """Behaviour after close; no window is ever created."""

    def test_closed_display_is_inert(self):
        display = DisplayHandler()
        display._closed = True

        display.show("title", np.zeros((4, 4, 3), dtype=np.uint8))

        assert display.poll_key() == KEY_NONE
        assert display.is_open() is False
        assert isinstance(display, DisplaySink)

    def test_open_before_first_show(self):
        assert DisplayHandler().is_open() is True


class TestModelLoader:
    """Face model loading with a stand-in YOLO class."""

    def test_missing_model(self, tmp_path):
        from bgremoval.Handlers.Model_Loader_Handler import ModelLoader

        assert ModelLoader(device="cpu").load_model(str(tmp_path / "face.pt")) is None

    def test_load_warmup_and_cache(self, tmp_path, monkeypatch):
        from bgremoval.Handlers import Model_Loader_Handler

        weights = tmp_path / "face.pt"
        weights.write_bytes(b"")
        model = MagicMock(task="detect")
        factory = MagicMock(return_value=model)
        monkeypatch.setattr(Model_Loader_Handler, "YOLO", factory)
        loader = Model_Loader_Handler.ModelLoader(device="cpu")

        assert loader.load_model(str(weights), warmup_size=(64, 48)) is model
        assert loader.load_model(str(weights)) is model

        factory.assert_called_once()
        model.to.assert_called_once_with("cpu")
        warmup_frame = model.predict.call_args.args[0]
        assert warmup_frame.shape == (48, 64, 3)
        assert loader.unload_model(str(weights)) is True
        assert loader.unload_model(str(weights)) is False

    def test_rejects_non_detection_model(self, tmp_path, monkeypatch):
        from bgremoval.Handlers import Model_Loader_Handler

        weights = tmp_path / "seg.pt"
        weights.write_bytes(b"")
        monkeypatch.setattr(Model_Loader_Handler, "YOLO", MagicMock(return_value=MagicMock(task="segment")))

        assert Model_Loader_Handler.ModelLoader(device="cpu").load_model(str(weights)) is None

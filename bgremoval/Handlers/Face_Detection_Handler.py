from typing import List, Tuple

import numpy as np
import supervision as sv

from bgremoval.utils.logger import Logger


def detection_centers(detections: sv.Detections) -> List[Tuple[int, int]]:
    """Integer (x, y) centers of every bounding box in *detections*."""
    if len(detections) == 0:
        return []
    centers = detections.get_anchors_coordinates(sv.Position.CENTER)
    return [(int(round(x)), int(round(y))) for x, y in centers]


class FaceDetectionHandler:
    """FaceDetector backed by a YOLO face model.

    The model comes from ModelLoader; predictions are wrapped in
    ``sv.Detections`` and reduced to box centers, which seed the tracker.
    """

    def __init__(self, model, confidence: float = 0.5, device: str = "cpu", max_faces: int = 0):
        """
        Args:
            model: A loaded ultralytics YOLO face model.
            confidence: Minimum detection confidence.
            device: Inference device ("cuda" or "cpu").
            max_faces: Keep only the most confident N faces (0 keeps all).
        """
        self.model = model
        self.confidence = confidence
        self.device = device
        self.max_faces = max_faces
        self.logger = Logger("FaceDetectionHandler")

    def detect(self, image: np.ndarray) -> sv.Detections:
        """Run the model on a BGR image and return its detections."""
        results = self.model.predict(image, conf=self.confidence, device=self.device, verbose=False)
        detections = sv.Detections.from_ultralytics(results[0])

        if self.max_faces and len(detections) > self.max_faces and detections.confidence is not None:
            order = np.argsort(-detections.confidence)[:self.max_faces]
            detections = detections[order]
        return detections

    def detect_faces(self, image: np.ndarray) -> List[Tuple[int, int]]:
        centers = detection_centers(self.detect(image))
        self.logger.debug(f"Detected {len(centers)} face(s)")
        return centers

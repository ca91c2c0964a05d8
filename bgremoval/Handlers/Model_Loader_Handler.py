"""Model Loader Handler - loads the YOLO face model onto the inference device.

A face model that is not a detection model, or that fails its warm-up pass,
is rejected so the node falls back to tracking without seed points instead
of failing on the first frame.
"""
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
import torch
from ultralytics import YOLO

from bgremoval.utils.logger import Logger


def select_device() -> str:
    """Pick the inference device: CUDA when present, CPU otherwise."""
    return "cuda" if torch.cuda.is_available() else "cpu"


class ModelLoader:
    """Loads and caches face models per (path, device)."""

    def __init__(self, device: Optional[str] = None):
        self.logger = Logger("ModelLoader")
        self.device = device or select_device()
        self.model_cache: Dict[Tuple[str, str], YOLO] = {}

    def load_model(self, model_path: str, warmup_size: Optional[Tuple[int, int]] = None) -> Optional[YOLO]:
        """
        Load a YOLO detection model and optionally run one warm-up inference.

        Args:
            model_path: Path to the local .pt file.
            warmup_size: (width, height) of a blank frame pushed through the
                model once, so the first real frame does not pay for lazy init.

        Returns:
            The model, or None if it is missing, not a detector or fails to run.
        """
        key = (str(model_path), self.device)
        if key in self.model_cache:
            return self.model_cache[key]

        if not Path(model_path).exists():
            self.logger.error(f"Face model not found: {model_path}")
            return None

        try:
            model = YOLO(model_path)
            if getattr(model, 'task', 'detect') != 'detect':
                self.logger.error(f"{model_path} is a '{model.task}' model, a detection model is required")
                return None
            model.to(self.device)
            if warmup_size:
                width, height = warmup_size
                model.predict(np.zeros((height, width, 3), dtype=np.uint8),
                              device=self.device, verbose=False)
        except Exception as e:
            self.logger.error(f"Error loading face model {model_path}: {e}")
            return None

        self.model_cache[key] = model
        self.logger.info(f"Face model ready on {self.device}: {model_path}")
        return model

    def unload_model(self, model_path: str) -> bool:
        """Drop the cached model for *model_path* on this loader's device."""
        model = self.model_cache.pop((str(model_path), self.device), None)
        if model is None:
            return False
        if self.device == "cuda":
            torch.cuda.empty_cache()
        self.logger.info(f"Face model unloaded: {model_path}")
        return True

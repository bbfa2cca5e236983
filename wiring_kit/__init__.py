"""
Detection post-processing for wiring inspection.

Turns a source image into per-category counts of wiring faults (sleeves,
crossed wires, exposed copper, exposed terminals) and an annotated copy of
the image. The model runtime is pluggable; NumPy and OpenCV do the rest.
"""

from .types import Detection
from .errors import DecodeError, ModelExecutionError, TensorShapeError, WiringKitError
from .tensors import InputTensor, OutputTensor
from .preprocess import PreprocessResult, decode_image, preprocess_image, stretch_resize
from .postprocess import DecodeConfig, OutputDecoder
from .nms import NMSConfig, SuppressionRule, box_iou, nms, partition_by_class, suppress_per_class
from .aggregate import WIRING_CATEGORIES, category_table_from_names, count_categories
from .visualize import WIRING_DISPLAY, DisplayClass, annotate_image, draw_detections
from .metadata import display_table_from_metadata, load_class_colors, load_class_names
from .model import ModelHandle
from .config import EngineConfig, load_engine_profile
from .runtime import DetectionEngine, DetectionResult, find_project_root, load_engine, resolve_path

__all__ = [
    "Detection",
    "DecodeError",
    "ModelExecutionError",
    "TensorShapeError",
    "WiringKitError",
    "InputTensor",
    "OutputTensor",
    "PreprocessResult",
    "decode_image",
    "preprocess_image",
    "stretch_resize",
    "DecodeConfig",
    "OutputDecoder",
    "NMSConfig",
    "SuppressionRule",
    "box_iou",
    "nms",
    "partition_by_class",
    "suppress_per_class",
    "WIRING_CATEGORIES",
    "category_table_from_names",
    "count_categories",
    "WIRING_DISPLAY",
    "DisplayClass",
    "annotate_image",
    "draw_detections",
    "display_table_from_metadata",
    "load_class_colors",
    "load_class_names",
    "ModelHandle",
    "EngineConfig",
    "load_engine_profile",
    "DetectionEngine",
    "DetectionResult",
    "find_project_root",
    "load_engine",
    "resolve_path",
]

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .aggregate import count_categories, with_count_suffix
from .config import EngineConfig
from .model import InferFn, ModelHandle
from .nms import suppress_per_class
from .postprocess import OutputDecoder
from .preprocess import ImageBytes, PreprocessResult, preprocess_image
from .tensors import OutputTensor
from .types import Detection
from .visualize import annotate_image

logger = logging.getLogger(__name__)


PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery.

    Useful when the model file lives in `<root>/models` and the caller runs from elsewhere.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class DetectionResult:
    category_counts: Dict[str, int]
    annotated_image: bytes
    detections: List[Detection] = field(default_factory=list)
    image_size: Tuple[int, int] = (0, 0)  # (width, height)

    @property
    def is_empty(self) -> bool:
        return not self.detections

    @property
    def total_tracked(self) -> int:
        return sum(self.category_counts.values())

    def counts_with_suffix(self, suffix: str = "_num") -> Dict[str, int]:
        return with_count_suffix(self.category_counts, suffix)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "category_counts": dict(self.category_counts),
            "image_size": list(self.image_size),
            "detections": [d.as_dict() for d in self.detections],
        }


class DetectionEngine:
    """
    Wiring inspection pipeline: decode + stretch resize -> model -> decode boxes
    -> per-class NMS -> category counts + annotated JPEG.

    The model is reached through a `ModelHandle`, which loads it once on first
    use and is shared by every call on this engine. Calls are otherwise
    independent and hold no state between them.
    """

    def __init__(
        self,
        model: Union[ModelHandle, InferFn],
        config: EngineConfig = EngineConfig(),
        *,
        nms_executor: Optional[Executor] = None,
    ):
        self.model = model if isinstance(model, ModelHandle) else ModelHandle.from_callable(model)
        self.config = config
        self._nms_executor = nms_executor

    def warmup(self) -> None:
        self.model.warmup()

    def preprocess(self, image_bytes: ImageBytes) -> PreprocessResult:
        return preprocess_image(image_bytes, self.config.input_size)

    def postprocess(
        self,
        preds: np.ndarray,
        orig_size: Tuple[int, int],
        conf_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[Detection]:
        decoder = OutputDecoder(self.config.decode_config(conf_threshold))
        nms_cfg = self.config.nms_config(iou_threshold)

        candidates = decoder.process(OutputTensor(np.asarray(preds), self.config.num_classes), orig_size)
        detections = suppress_per_class(candidates, nms_cfg, executor=self._nms_executor)
        logger.debug("Candidates: %d decoded, %d after NMS", len(candidates), len(detections))
        return detections

    def _finish(self, prep: PreprocessResult, detections: List[Detection]) -> DetectionResult:
        counts = count_categories(detections, self.config.category_table)
        annotated = annotate_image(
            prep.image,
            detections,
            display_table=self.config.display_table,
            jpeg_quality=self.config.jpeg_quality,
        )
        logger.info("Detection done: %d boxes, counts=%s", len(detections), counts)
        return DetectionResult(
            category_counts=counts,
            annotated_image=annotated,
            detections=detections,
            image_size=prep.orig_size,
        )

    def _check_thresholds(self, conf_threshold: Optional[float], iou_threshold: Optional[float]) -> None:
        # Fail before any decode/inference work is spent on the image.
        self.config.decode_config(conf_threshold)
        self.config.nms_config(iou_threshold)

    def detect(
        self,
        image_bytes: ImageBytes,
        conf_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> DetectionResult:
        self._check_thresholds(conf_threshold, iou_threshold)

        t0 = time.perf_counter()
        prep = self.preprocess(image_bytes)
        t1 = time.perf_counter()
        preds = self.model(prep.tensor)
        t2 = time.perf_counter()
        detections = self.postprocess(preds, prep.orig_size, conf_threshold, iou_threshold)
        t3 = time.perf_counter()
        result = self._finish(prep, detections)
        logger.debug(
            "Timings: preprocess=%.1fms inference=%.1fms postprocess=%.1fms annotate=%.1fms",
            (t1 - t0) * 1000.0,
            (t2 - t1) * 1000.0,
            (t3 - t2) * 1000.0,
            (time.perf_counter() - t3) * 1000.0,
        )
        return result

    async def detect_async(
        self,
        image_bytes: ImageBytes,
        conf_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> DetectionResult:
        """
        Same as `detect`, with image decode, inference and re-encode run in worker threads.
        """

        self._check_thresholds(conf_threshold, iou_threshold)

        prep = await asyncio.to_thread(self.preprocess, image_bytes)
        preds = await asyncio.to_thread(self.model, prep.tensor)
        detections = self.postprocess(preds, prep.orig_size, conf_threshold, iou_threshold)
        return await asyncio.to_thread(self._finish, prep, detections)

    __call__ = detect


def load_engine(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    config: EngineConfig = EngineConfig(),
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    torch_output_index: int = 0,
    warmup: bool = False,
) -> DetectionEngine:
    """
    Create a detection engine for a model on disk.

    The model itself is loaded on the first `detect` call (or right away with
    `warmup=True`). A failed load is retried on the next call.

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime" or "torchscript"; None infers it from the extension
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":

        def _load() -> InferFn:
            from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

            return OnnxRuntimeBackend(
                resolved,
                OnnxRuntimeBackendConfig(
                    providers=onnx_providers,
                    input_name=config.input_name,
                    output_name=config.output_name,
                ),
            ).infer

    elif chosen == "torchscript":

        def _load() -> InferFn:
            from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

            return TorchScriptBackend(
                resolved,
                TorchScriptBackendConfig(
                    device=torch_device,
                    half=torch_half,
                    output_index=torch_output_index,
                    num_classes=config.num_classes,
                ),
            ).infer

    else:
        raise ValueError(f"Unsupported backend: {backend!r}")

    engine = DetectionEngine(ModelHandle(_load, name=f"{chosen} model {resolved.name}"), config)
    if warmup:
        engine.warmup()
    return engine

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import numpy as np

from .errors import ModelExecutionError
from .tensors import InputTensor

logger = logging.getLogger(__name__)


InferFn = Callable[[np.ndarray], np.ndarray]


class ModelHandle:
    """
    Owner of the shared, lazily loaded model.

    `loader` is called at most once successfully, under a lock, the first time
    the model is needed (or by `warmup()`). A loader that raises leaves the
    handle unloaded so the next call tries again.
    """

    def __init__(self, loader: Callable[[], InferFn], *, name: str = "model"):
        self._loader = loader
        self._name = name
        self._infer_fn: Optional[InferFn] = None
        self._lock = threading.Lock()

    @classmethod
    def from_callable(cls, infer_fn: InferFn, *, name: str = "model") -> "ModelHandle":
        """Wrap an already loaded inference callable."""

        handle = cls(lambda: infer_fn, name=name)
        handle._infer_fn = infer_fn
        return handle

    @property
    def name(self) -> str:
        return self._name

    @property
    def loaded(self) -> bool:
        return self._infer_fn is not None

    def get(self) -> InferFn:
        infer_fn = self._infer_fn
        if infer_fn is not None:
            return infer_fn

        with self._lock:
            if self._infer_fn is None:
                logger.info("Loading %s", self._name)
                try:
                    loaded = self._loader()
                except Exception as exc:
                    logger.warning("Loading %s failed: %s", self._name, exc)
                    raise ModelExecutionError(f"Failed to load {self._name}: {exc}") from exc
                if not callable(loaded):
                    raise ModelExecutionError(f"Loader for {self._name} returned a non-callable: {type(loaded).__name__}")
                self._infer_fn = loaded
                logger.info("Loaded %s", self._name)
            return self._infer_fn

    def warmup(self) -> None:
        self.get()

    def reset(self) -> None:
        with self._lock:
            self._infer_fn = None

    def __call__(self, tensor: InputTensor) -> np.ndarray:
        infer_fn = self.get()
        try:
            out = infer_fn(tensor.data)
        except ModelExecutionError:
            raise
        except Exception as exc:
            raise ModelExecutionError(f"{self._name} inference failed: {exc}") from exc
        if out is None:
            raise ModelExecutionError(f"{self._name} returned no output")
        if not isinstance(out, np.ndarray):
            try:
                out = np.asarray(out, dtype=np.float32)
            except (TypeError, ValueError) as exc:
                raise ModelExecutionError(f"{self._name} returned a non-array output: {type(out).__name__}") from exc
        return out

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np

from ..errors import TensorShapeError
from ..tensors import InputTensor, OutputTensor


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    - device: torch device string for the loaded module ("cpu", "cuda:0")
    - half: run the module in float16; the returned array is float32 either way
    - output_index: position of the detection head when the module returns a tuple/list
    - num_classes: when set, the head output is checked against (1, 4 + K, N)
    """

    device: str = "cpu"
    half: bool = False
    output_index: int = 0
    num_classes: Optional[int] = None


class TorchScriptBackend:
    """
    Runs a scripted/traced detection module on the engine's input blob.

    The blob is checked as an `InputTensor` before it reaches torch. A head
    exported without the batch axis, (4 + K, N), gets one added back.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.cfg = cfg
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.device = torch.device(cfg.device)
        module = torch.jit.load(str(self.model_path), map_location=self.device)
        module.eval()
        if cfg.half:
            module = module.half()
        self.module = module

    def _select_head(self, y: Any) -> Any:
        if isinstance(y, (tuple, list)):
            if not -len(y) <= self.cfg.output_index < len(y):
                raise TensorShapeError(
                    f"output_index {self.cfg.output_index} out of range for {len(y)} model outputs"
                )
            y = y[self.cfg.output_index]
        if not hasattr(y, "detach"):
            raise TensorShapeError(f"Model returned {type(y).__name__}, expected a tensor")
        return y

    def infer(self, blob: np.ndarray) -> np.ndarray:
        torch = self._torch
        tensor = InputTensor(np.ascontiguousarray(blob, dtype=np.float32))

        x = torch.from_numpy(tensor.data).to(self.device)
        if self.cfg.half:
            x = x.half()

        with torch.no_grad():
            y = self._select_head(self.module(x))

        out = y.detach().float().cpu().numpy()
        if out.ndim == 2:
            out = out[None]
        if self.cfg.num_classes is not None:
            OutputTensor(out, self.cfg.num_classes)
        return out

    __call__ = infer

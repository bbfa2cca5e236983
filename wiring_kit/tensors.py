from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import TensorShapeError


@dataclass(frozen=True)
class InputTensor:
    """
    Model input blob: float32, shape (1, 3, S, S), planes ordered R, G, B, values in [0, 1].
    """

    data: np.ndarray

    def __post_init__(self) -> None:
        arr = self.data
        if not isinstance(arr, np.ndarray):
            raise TensorShapeError(f"InputTensor expects a NumPy array, got {type(arr).__name__}")
        if arr.ndim != 4 or arr.shape[0] != 1 or arr.shape[1] != 3 or arr.shape[2] != arr.shape[3]:
            raise TensorShapeError(f"InputTensor must have shape (1, 3, S, S), got {arr.shape}")
        if arr.dtype != np.float32:
            raise TensorShapeError(f"InputTensor must be float32, got {arr.dtype}")

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.data.shape)

    @property
    def size(self) -> int:
        return int(self.data.shape[2])


@dataclass(frozen=True)
class OutputTensor:
    """
    Raw detection head output with logical shape (1, 4 + K, N).

    The layout is attribute-major: row 0..3 hold cx, cy, w, h for all N
    candidates, rows 4..4+K hold the per-class scores.
    """

    data: np.ndarray
    num_classes: int

    def __post_init__(self) -> None:
        arr = self.data
        if not isinstance(arr, np.ndarray):
            raise TensorShapeError(f"OutputTensor expects a NumPy array, got {type(arr).__name__}")
        if self.num_classes < 1:
            raise TensorShapeError(f"num_classes must be >= 1, got {self.num_classes}")
        if arr.ndim == 3:
            if arr.shape[0] != 1:
                raise TensorShapeError(f"Batch > 1 is not supported (got shape {arr.shape}).")
            arr = arr[0]
        if arr.ndim != 2:
            raise TensorShapeError(f"OutputTensor must have shape (1, 4 + K, N), got {self.data.shape}")
        if arr.shape[0] != 4 + self.num_classes:
            raise TensorShapeError(
                f"Expected {4 + self.num_classes} channels (4 box + {self.num_classes} classes), "
                f"got shape {self.data.shape}"
            )
        object.__setattr__(self, "data", arr)

    @classmethod
    def from_flat(cls, buffer, num_classes: int, num_candidates: Optional[int] = None) -> "OutputTensor":
        """
        Wrap a flat float buffer (as returned by some runtimes) in the transposed layout.
        """

        flat = np.asarray(buffer, dtype=np.float32).reshape(-1)
        channels = 4 + int(num_classes)
        if num_candidates is None:
            if flat.size % channels != 0:
                raise TensorShapeError(
                    f"Buffer of {flat.size} values is not divisible into {channels} channels"
                )
            num_candidates = flat.size // channels
        if flat.size != channels * num_candidates:
            raise TensorShapeError(
                f"Buffer of {flat.size} values does not match (1, {channels}, {num_candidates})"
            )
        return cls(flat.reshape(1, channels, num_candidates), num_classes=int(num_classes))

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (1, int(self.data.shape[0]), int(self.data.shape[1]))

    @property
    def num_candidates(self) -> int:
        return int(self.data.shape[1])

    @property
    def boxes_cxcywh(self) -> np.ndarray:
        # (4, N)
        return self.data[0:4, :]

    @property
    def class_scores(self) -> np.ndarray:
        # (K, N)
        return self.data[4:, :]

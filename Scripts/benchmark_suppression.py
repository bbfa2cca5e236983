from __future__ import annotations

import argparse
import statistics
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List

import numpy as np

try:
    from tqdm import tqdm  # type: ignore
except Exception:  # pragma: no cover
    tqdm = None

from wiring_kit import DecodeConfig, NMSConfig, OutputDecoder, OutputTensor, suppress_per_class


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_output(n: int, num_classes: int, imgsz: int, hot_fraction: float, seed: int) -> OutputTensor:
    """
    Build a (1, 4 + K, N) head output where roughly `hot_fraction` of candidates score high.
    """

    rng = np.random.default_rng(seed)
    out = np.zeros((1, 4 + num_classes, n), dtype=np.float32)
    out[0, 0] = rng.uniform(0, imgsz, size=n)
    out[0, 1] = rng.uniform(0, imgsz, size=n)
    out[0, 2] = rng.uniform(8, 80, size=n)
    out[0, 3] = rng.uniform(8, 80, size=n)
    out[0, 4:] = rng.uniform(0.0, 0.02, size=(num_classes, n))

    hot = rng.random(n) < hot_fraction
    hot_classes = rng.integers(0, min(num_classes, 4), size=int(hot.sum()))
    out[0, 4 + hot_classes, np.flatnonzero(hot)] = rng.uniform(0.05, 1.0, size=int(hot.sum()))
    return OutputTensor(out, num_classes=num_classes)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark box decoding + per-class NMS on synthetic model outputs (no model needed)."
    )
    parser.add_argument("--candidates", type=int, default=8400, help="Number of candidates N (8400 for 640 input).")
    parser.add_argument("--classes", type=int, default=80, help="Number of model classes K.")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input edge S.")
    parser.add_argument("--orig-w", type=int, default=1280, help="Original image width for rescaling.")
    parser.add_argument("--orig-h", type=int, default=960, help="Original image height for rescaling.")
    parser.add_argument("--hot-fraction", type=float, default=0.05, help="Share of candidates above threshold.")
    parser.add_argument("--conf", type=float, default=0.05, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.3, help="IoU threshold for NMS.")
    parser.add_argument("--workers", type=int, default=4, help="Threads for the parallel per-class NMS run.")
    parser.add_argument("--warmup", type=int, default=5, help="Warmup iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=100, help="Recorded iterations.")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed for the synthetic output.")
    args = parser.parse_args()

    if args.candidates < 1:
        raise ValueError("--candidates must be >= 1")
    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")
    if not 0.0 <= args.hot_fraction <= 1.0:
        raise ValueError("--hot-fraction must be within [0, 1]")
    if args.workers < 1:
        raise ValueError("--workers must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    tensor = _synthetic_output(args.candidates, args.classes, args.imgsz, args.hot_fraction, args.seed)
    decoder = OutputDecoder(DecodeConfig(conf_threshold=args.conf, input_size=args.imgsz, num_classes=args.classes))
    nms_cfg = NMSConfig(iou_threshold=args.iou)
    orig_size = (int(args.orig_w), int(args.orig_h))

    t_decode: List[float] = []
    t_nms: List[float] = []
    t_nms_parallel: List[float] = []
    kept = 0
    decoded = 0

    if tqdm is None:
        print("Note: tqdm is not installed; progress bar disabled.")
    total = int(args.warmup) + int(args.repeats)
    iterator = tqdm(range(total), unit="it") if tqdm is not None else range(total)

    with ThreadPoolExecutor(max_workers=int(args.workers)) as pool:
        for i in iterator:
            t0 = time.perf_counter()
            candidates = decoder.process(tensor, orig_size)
            t1 = time.perf_counter()
            sequential = suppress_per_class(candidates, nms_cfg)
            t2 = time.perf_counter()
            parallel = suppress_per_class(candidates, nms_cfg, executor=pool)
            t3 = time.perf_counter()

            if parallel != sequential:
                raise RuntimeError("Parallel NMS output differs from sequential output.")
            if i < int(args.warmup):
                continue

            t_decode.append(t1 - t0)
            t_nms.append(t2 - t1)
            t_nms_parallel.append(t3 - t2)
            decoded = len(candidates)
            kept = len(sequential)

    print(_format_summary("decode", _summarize_ms(t_decode)))
    print(_format_summary("nms_sequential", _summarize_ms(t_nms)))
    print(_format_summary(f"nms_threads_{args.workers}", _summarize_ms(t_nms_parallel)))
    print(f"candidates={args.candidates} above_conf={decoded} kept_after_nms={kept}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

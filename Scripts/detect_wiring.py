import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path

from wiring_kit import (
    EngineConfig,
    display_table_from_metadata,
    load_engine,
    load_engine_profile,
)
from wiring_kit.errors import WiringKitError


def main() -> int:
    parser = argparse.ArgumentParser(description="Count wiring faults in one image and save the annotated copy.")
    parser.add_argument("--image", required=True, help="Path to an input image (JPEG/PNG).")
    parser.add_argument("--model", default="electricdrivev2.0.onnx", help="Path to the model (.onnx/.pt).")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument("--profile", default=None, help="Optional engine profile JSON.")
    parser.add_argument("--metadata", default=None, help="Optional class metadata (names/colors) for labels.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold (profile default if omitted).")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS (profile default if omitted).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--out", default=None, help="Where to write the annotated JPEG.")
    parser.add_argument("--json", action="store_true", help="Print the full result (boxes included) as JSON.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG/INFO/WARNING).")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.conf is not None and not 0.0 <= args.conf <= 1.0:
        raise ValueError("--conf must be within [0, 1]")
    if args.iou is not None and not 0.0 <= args.iou <= 1.0:
        raise ValueError("--iou must be within [0, 1]")

    config = load_engine_profile(Path(args.profile)) if args.profile else EngineConfig()
    if args.metadata:
        config = replace(config, display_table=display_table_from_metadata(args.metadata))

    image_path = Path(args.image)
    if not image_path.exists():
        raise FileNotFoundError(f"Could not read image at path: {image_path}")

    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    engine = load_engine(args.model, backend=args.backend, config=config, onnx_providers=onnx_providers)

    try:
        result = engine.detect(image_path.read_bytes(), conf_threshold=args.conf, iou_threshold=args.iou)
    except WiringKitError as e:
        print(f"Inference unavailable for {image_path}: {e}")
        return 1

    if args.out:
        Path(args.out).write_bytes(result.annotated_image)
        print(f"Wrote annotated image: {args.out}")

    if args.json:
        print(json.dumps(result.as_dict(), indent=2))
    else:
        print(json.dumps(result.counts_with_suffix()))
        for det in result.detections:
            print(det.class_id, f"{det.confidence:.3f}", tuple(round(v, 1) for v in det.as_xyxy()))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

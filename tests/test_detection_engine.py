import unittest

import numpy as np

from _helpers import encode_png, gray_image, make_output
from wiring_kit.config import EngineConfig
from wiring_kit.errors import DecodeError, ModelExecutionError, TensorShapeError
from wiring_kit.model import ModelHandle
from wiring_kit.nms import box_iou
from wiring_kit.preprocess import decode_image
from wiring_kit.runtime import DetectionEngine, load_engine


ZERO_COUNTS = {"sleeves": 0, "cross": 0, "excopper": 0, "exterminal": 0}


class FakeModel:
    """Returns a fixed head output and records the input blobs it was given."""

    def __init__(self, output: np.ndarray):
        self.output = output
        self.inputs = []

    def __call__(self, blob: np.ndarray) -> np.ndarray:
        self.inputs.append(blob)
        return self.output.copy()


class TestDetectionEngine(unittest.TestCase):
    def test_gray_image_without_objects(self) -> None:
        model = FakeModel(make_output([(320, 320, 50, 50, 3, 0.02)], num_anchors=64))
        engine = DetectionEngine(model)
        src = encode_png(gray_image(640, 640))

        result = engine.detect(src, conf_threshold=0.1)

        self.assertEqual(result.category_counts, ZERO_COUNTS)
        self.assertTrue(result.is_empty)
        self.assertEqual(result.total_tracked, 0)
        self.assertEqual(decode_image(result.annotated_image).shape, (640, 640, 3))
        self.assertEqual(model.inputs[0].shape, (1, 3, 640, 640))
        self.assertEqual(model.inputs[0].dtype, np.float32)

    def test_overlapping_same_class_keeps_best(self) -> None:
        # Model-space boxes (100,100,200,200) and (100,100,200,150): IoU 0.5.
        model = FakeModel(
            make_output(
                [
                    (150, 150, 100, 100, 3, 0.9),
                    (150, 125, 100, 50, 3, 0.7),
                ]
            )
        )
        result = DetectionEngine(model).detect(encode_png(gray_image(640, 640)), 0.1, 0.3)
        self.assertEqual(len(result.detections), 1)
        self.assertAlmostEqual(result.detections[0].confidence, 0.9, places=6)
        self.assertEqual(result.category_counts["sleeves"], 1)

    def test_overlapping_different_classes_both_survive(self) -> None:
        model = FakeModel(
            make_output(
                [
                    (150, 150, 100, 100, 0, 0.8),
                    (150, 150, 100, 100, 1, 0.6),
                ]
            )
        )
        result = DetectionEngine(model).detect(encode_png(gray_image(640, 640)), 0.1, 0.3)
        self.assertEqual(len(result.detections), 2)
        self.assertEqual(box_iou(result.detections[0].as_xyxy(), result.detections[1].as_xyxy()), 1.0)
        self.assertEqual(result.category_counts, {"sleeves": 0, "cross": 1, "excopper": 1, "exterminal": 0})

    def test_boxes_rescale_to_source_image(self) -> None:
        model = FakeModel(make_output([(150, 150, 100, 100, 2, 0.8)]))
        result = DetectionEngine(model).detect(encode_png(gray_image(1280, 960)), 0.1)
        self.assertEqual(result.image_size, (1280, 960))
        self.assertTrue(np.allclose(result.detections[0].as_xyxy(), (200, 150, 400, 300)))
        self.assertEqual(decode_image(result.annotated_image).shape, (960, 1280, 3))

    def test_untracked_classes_stay_in_detections(self) -> None:
        model = FakeModel(make_output([(100, 100, 40, 40, 3, 0.9), (300, 300, 40, 40, 50, 0.8)]))
        result = DetectionEngine(model).detect(encode_png(gray_image(640, 640)), 0.1)
        self.assertEqual(len(result.detections), 2)
        self.assertEqual(result.total_tracked, 1)
        self.assertLessEqual(result.total_tracked, len(result.detections))

    def test_repeated_calls_are_deterministic(self) -> None:
        rng = np.random.default_rng(11)
        out = np.zeros((1, 84, 256), dtype=np.float32)
        out[0, 0:2] = rng.uniform(0, 640, size=(2, 256))
        out[0, 2:4] = rng.uniform(10, 120, size=(2, 256))
        out[0, 4:8] = rng.uniform(0, 1, size=(4, 256))
        engine = DetectionEngine(FakeModel(out))
        src = encode_png(gray_image(800, 600))

        first = engine.detect(src, 0.1, 0.3)
        second = engine.detect(src, 0.1, 0.3)
        self.assertEqual(first.category_counts, second.category_counts)
        self.assertEqual([d.class_id for d in first.detections], [d.class_id for d in second.detections])
        confs = [d.confidence for d in first.detections]
        self.assertEqual(confs, sorted(confs, reverse=True))
        self.assertTrue(all(c >= 0.1 for c in confs))

    def test_suppression_rule_from_config(self) -> None:
        output = make_output([(150, 150, 100, 100, 3, 0.9), (150, 125, 100, 50, 3, 0.7)])
        src = encode_png(gray_image(640, 640))
        keep_boundary = DetectionEngine(FakeModel(output), EngineConfig(iou_threshold=0.5))
        drop_boundary = DetectionEngine(FakeModel(output), EngineConfig(iou_threshold=0.5, suppression_rule="ge"))
        self.assertEqual(len(keep_boundary.detect(src).detections), 2)
        self.assertEqual(len(drop_boundary.detect(src).detections), 1)

    def test_result_dict(self) -> None:
        model = FakeModel(make_output([(100, 100, 40, 40, 3, 0.9)]))
        result = DetectionEngine(model).detect(encode_png(gray_image(640, 640)))
        payload = result.as_dict()
        self.assertEqual(payload["category_counts"]["sleeves"], 1)
        self.assertEqual(payload["detections"][0]["class_id"], 3)
        self.assertNotIn("annotated_image", payload)
        self.assertEqual(result.counts_with_suffix()["sleeves_num"], 1)


class TestDetectionEngineErrors(unittest.TestCase):
    def test_decode_error_propagates_before_inference(self) -> None:
        model = FakeModel(make_output([]))
        with self.assertRaises(DecodeError):
            DetectionEngine(model).detect(b"\x00\x01garbage")
        self.assertEqual(model.inputs, [])

    def test_model_failure(self) -> None:
        def broken(blob):
            raise RuntimeError("session crashed")

        with self.assertRaises(ModelExecutionError):
            DetectionEngine(broken).detect(encode_png(gray_image(64, 64)))

    def test_failed_lazy_load_recovers(self) -> None:
        attempts = []

        def loader():
            attempts.append(1)
            if len(attempts) == 1:
                raise FileNotFoundError("model.onnx")
            return FakeModel(make_output([(100, 100, 40, 40, 0, 0.9)]))

        engine = DetectionEngine(ModelHandle(loader))
        src = encode_png(gray_image(640, 640))
        with self.assertRaises(ModelExecutionError):
            engine.detect(src)
        result = engine.detect(src)
        self.assertEqual(result.category_counts["cross"], 1)

    def test_wrong_output_shape(self) -> None:
        model = FakeModel(np.zeros((1, 10, 32), dtype=np.float32))
        with self.assertRaises(TensorShapeError):
            DetectionEngine(model).detect(encode_png(gray_image(64, 64)))

    def test_invalid_threshold_override(self) -> None:
        model = FakeModel(make_output([]))
        engine = DetectionEngine(model)
        with self.assertRaises(ValueError):
            engine.detect(encode_png(gray_image(64, 64)), conf_threshold=1.5)
        with self.assertRaises(ValueError):
            engine.detect(encode_png(gray_image(64, 64)), iou_threshold=-0.1)
        self.assertEqual(model.inputs, [])

    def test_load_engine_rejects_unknown_extension(self) -> None:
        with self.assertRaises(ValueError):
            load_engine("models/wiring.bin", root=".")

    def test_load_engine_defers_model_loading(self) -> None:
        engine = load_engine("models/missing.onnx", root=".")
        self.assertFalse(engine.model.loaded)
        with self.assertRaises(ModelExecutionError):
            engine.detect(encode_png(gray_image(64, 64)))

    def test_huge_box_annotates_without_error(self) -> None:
        model = FakeModel(make_output([(320, 320, 1e10, 1e10, 3, 0.9)]))
        result = DetectionEngine(model).detect(encode_png(gray_image(640, 640)), 0.1)
        self.assertEqual(result.category_counts["sleeves"], 1)
        self.assertEqual(decode_image(result.annotated_image).shape, (640, 640, 3))


class TestDetectionEngineAsync(unittest.IsolatedAsyncioTestCase):
    async def test_async_matches_sync(self) -> None:
        model = FakeModel(
            make_output(
                [
                    (150, 150, 100, 100, 3, 0.9),
                    (150, 125, 100, 50, 3, 0.7),
                    (400, 400, 60, 60, 0, 0.5),
                ]
            )
        )
        engine = DetectionEngine(model)
        src = encode_png(gray_image(1280, 960))

        sync_result = engine.detect(src, 0.1, 0.3)
        async_result = await engine.detect_async(src, 0.1, 0.3)
        self.assertEqual(async_result.category_counts, sync_result.category_counts)
        self.assertEqual(async_result.detections, sync_result.detections)

    async def test_async_errors(self) -> None:
        engine = DetectionEngine(FakeModel(make_output([])))
        with self.assertRaises(DecodeError):
            await engine.detect_async(b"")


if __name__ == "__main__":
    unittest.main()

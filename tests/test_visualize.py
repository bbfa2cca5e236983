import unittest

import numpy as np

from _helpers import encode_png, gray_image
from wiring_kit.preprocess import decode_image
from wiring_kit.types import Detection
from wiring_kit.visualize import WIRING_DISPLAY, annotate_image, draw_detections


class TestDrawDetections(unittest.TestCase):
    def test_box_and_label_use_class_color(self) -> None:
        img = gray_image(200, 200)
        det = Detection(x1=20, y1=40, x2=100, y2=120, confidence=0.87, class_id=3)
        out = draw_detections(img, [det], display_table=WIRING_DISPLAY)

        green = [0, 255, 0]
        self.assertEqual(out[80, 20].tolist(), green)  # left edge
        self.assertEqual(out[120, 60].tolist(), green)  # bottom edge
        self.assertEqual(out[35, 20].tolist(), green)  # label tag above the box
        self.assertEqual(out[80, 60].tolist(), [128, 128, 128])  # inside untouched
        # Source is not modified.
        self.assertTrue(np.all(img == 128))

    def test_cross_is_red(self) -> None:
        det = Detection(x1=50, y1=50, x2=150, y2=150, confidence=0.5, class_id=0)
        out = draw_detections(gray_image(200, 200), [det], display_table=WIRING_DISPLAY)
        self.assertEqual(out[100, 150].tolist(), [0, 0, 255])

    def test_unknown_class_and_out_of_bounds_box(self) -> None:
        dets = [
            Detection(x1=-15, y1=-5, x2=40, y2=30, confidence=0.3, class_id=42),
            Detection(x1=180, y1=170, x2=230, y2=215, confidence=0.6, class_id=3),
        ]
        out = draw_detections(gray_image(200, 200), dets, display_table=WIRING_DISPLAY)
        self.assertEqual(out.shape, (200, 200, 3))
        self.assertFalse(np.all(out == 128))

    def test_huge_and_non_finite_boxes(self) -> None:
        dets = [
            Detection(x1=-5e9, y1=-5e9, x2=5e9, y2=5e9, confidence=0.9, class_id=3),
            Detection(x1=float("nan"), y1=10, x2=50, y2=60, confidence=0.8, class_id=0),
        ]
        out = draw_detections(gray_image(200, 200), dets, display_table=WIRING_DISPLAY)
        self.assertEqual(out.shape, (200, 200, 3))
        # The huge box keeps its coordinates; only the drawing is limited to the canvas.
        self.assertEqual(dets[0].x2, 5e9)
        self.assertEqual(out[100, 100].tolist(), [128, 128, 128])

    def test_label_tag_is_20px_high(self) -> None:
        det = Detection(x1=20, y1=60, x2=120, y2=150, confidence=0.87, class_id=3)
        out = draw_detections(gray_image(200, 200), [det], display_table=WIRING_DISPLAY)
        green = [0, 255, 0]
        self.assertEqual(out[40, 20].tolist(), green)
        self.assertEqual(out[38, 20].tolist(), [128, 128, 128])

    def test_no_detections_leaves_image_unchanged(self) -> None:
        img = gray_image(64, 48)
        out = draw_detections(img, [])
        self.assertTrue(np.array_equal(out, img))

    def test_rejects_non_bgr_input(self) -> None:
        with self.assertRaises(ValueError):
            draw_detections(np.zeros((10, 10), dtype=np.uint8), [])


class TestAnnotateImage(unittest.TestCase):
    def test_empty_detection_set_reencodes_source(self) -> None:
        src = encode_png(gray_image(640, 480))
        jpeg = annotate_image(src, [])
        self.assertEqual(jpeg[:2], b"\xff\xd8")
        decoded = decode_image(jpeg)
        self.assertEqual(decoded.shape, (480, 640, 3))
        self.assertLessEqual(int(np.abs(decoded.astype(np.int16) - 128).max()), 3)

    def test_annotated_keeps_dimensions(self) -> None:
        det = Detection(x1=10, y1=30, x2=200, y2=200, confidence=0.9, class_id=2)
        jpeg = annotate_image(gray_image(320, 240), [det], display_table=WIRING_DISPLAY, jpeg_quality=80)
        self.assertEqual(decode_image(jpeg).shape, (240, 320, 3))


if __name__ == "__main__":
    unittest.main()

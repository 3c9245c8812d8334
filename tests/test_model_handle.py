import unittest

from services.vision_service.errors import InvalidTransition
from services.vision_service.model_handle import ModelHandle
from services.vision_service.schemas import ModelKind, ModelStatus


class ModelHandleTestCase(unittest.TestCase):
    def setUp(self):
        self.handle = ModelHandle(ModelKind.DETECTOR, service=object())

    def test_starts_idle(self):
        self.assertEqual(self.handle.status, ModelStatus.IDLE)
        self.assertIsNone(self.handle.load_duration_ms)
        self.assertIsNone(self.handle.error_message)

    def test_ready_records_duration(self):
        self.handle.mark_loading()
        self.handle.mark_ready(instance="model")
        self.assertTrue(self.handle.is_ready)
        self.assertEqual(self.handle.instance, "model")
        self.assertGreaterEqual(self.handle.load_duration_ms, 0.0)

    def test_failed_records_message(self):
        self.handle.mark_loading()
        self.handle.mark_failed("network down")
        self.assertEqual(self.handle.status, ModelStatus.FAILED)
        self.assertEqual(self.handle.error_message, "network down")
        self.assertIsNone(self.handle.load_duration_ms)

    def test_cannot_skip_loading(self):
        with self.assertRaises(InvalidTransition):
            self.handle.mark_ready(instance="model")

    def test_terminal_states_never_revert(self):
        self.handle.mark_loading()
        self.handle.mark_failed("boom")
        with self.assertRaises(InvalidTransition):
            self.handle.mark_loading()
        with self.assertRaises(InvalidTransition):
            self.handle.mark_ready(instance="model")


if __name__ == "__main__":
    unittest.main()

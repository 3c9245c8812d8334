import unittest

from services.vision_service.model_handle import ModelHandle
from services.vision_service.schemas import ModelKind, Severity
from services.vision_service.status import project


def _handle(kind, outcome=None):
    h = ModelHandle(kind, service=None)
    if outcome is None:
        return h
    h.mark_loading()
    if outcome == "ready":
        h.mark_ready(instance=object())
    elif outcome == "failed":
        h.mark_failed("boom")
    return h


class StatusProjectorTestCase(unittest.TestCase):
    def test_loading(self):
        for det, cls in [(None, None), ("loading", "loading"), ("ready", "loading"), ("loading", "failed")]:
            view = project(_handle(ModelKind.DETECTOR, det), _handle(ModelKind.CLASSIFIER, cls))
            self.assertEqual(view.message, "Loading...")
            self.assertEqual(view.severity, Severity.WARN)

    def test_both_online(self):
        view = project(_handle(ModelKind.DETECTOR, "ready"), _handle(ModelKind.CLASSIFIER, "ready"))
        self.assertEqual(view.message, "Both models are online")
        self.assertEqual(view.severity, Severity.OK)

    def test_partial(self):
        view = project(_handle(ModelKind.DETECTOR, "ready"), _handle(ModelKind.CLASSIFIER, "failed"))
        self.assertEqual(view.message, "COCO-SSD is online")
        self.assertEqual(view.severity, Severity.OK)

        view = project(_handle(ModelKind.DETECTOR, "failed"), _handle(ModelKind.CLASSIFIER, "ready"))
        self.assertEqual(view.message, "MobileNet is online")

    def test_custom_display_names(self):
        names = {ModelKind.DETECTOR: "SSDLite", ModelKind.CLASSIFIER: "MobileNetV3"}
        view = project(_handle(ModelKind.DETECTOR, "failed"), _handle(ModelKind.CLASSIFIER, "ready"), names.get)
        self.assertEqual(view.message, "MobileNetV3 is online")

    def test_both_offline(self):
        view = project(_handle(ModelKind.DETECTOR, "failed"), _handle(ModelKind.CLASSIFIER, "failed"))
        self.assertEqual(view.message, "Both models are offline")
        self.assertEqual(view.severity, Severity.ERROR)


if __name__ == "__main__":
    unittest.main()

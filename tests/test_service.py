import asyncio
import io
import tempfile
import unittest
from pathlib import Path

from fastapi import HTTPException
from PIL import Image

from core.config import Settings
from services.vision_service.api import upload_image
from services.vision_service.errors import ImageDecodeError
from services.vision_service.schemas import ModelKind, ModelStatus, Severity
from services.vision_service.service import VisionService

from fakes import FakeModelService, StaticModel, settle, GOLDEN


def _png_bytes(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class VisionServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        Image.new("RGB", (32, 32), (0, 128, 0)).save(Path(self.tmp.name) / "cow.jpg")

    def tearDown(self):
        self.tmp.cleanup()

    def _settings(self, **kw):
        base = dict(MODEL_BACKEND="mock", LOG_FILE=None, GALLERY_DIR=self.tmp.name)
        base.update(kw)
        return Settings(**base)

    async def _started(self, **kw) -> VisionService:
        svc = VisionService(settings=self._settings(**kw))
        await svc.startup()
        await svc.wait_until_loaded()
        self.addAsyncCleanup(svc.shutdown)
        return svc

    async def test_both_models_online(self):
        svc = await self._started()
        state = svc.state()
        self.assertEqual(state.statusMessage, "Both models are online")
        self.assertEqual(state.statusSeverity, Severity.OK)
        self.assertTrue(svc.info()["ready"])

    async def test_both_models_offline(self):
        svc = await self._started(MOCK_FAIL_KINDS=["detector", "classifier"])
        state = svc.state()
        self.assertEqual(state.statusMessage, "Both models are offline")
        self.assertEqual(state.statusSeverity, Severity.ERROR)

    async def test_upload_runs_both_models(self):
        svc = await self._started()
        token = await svc.select_upload("red.png", _png_bytes(), wait=True)
        state = svc.state()
        self.assertEqual(state.imageId, token.id)
        self.assertTrue(state.imageUri.endswith("/red.png"))
        det = state.detectorState.predictions
        self.assertEqual(det[0].label, "person")
        self.assertEqual(det[0].box.w, 32)
        self.assertEqual(state.classifierState.predictions[0].label, "tabby, tabby cat")

    async def test_gallery_after_upload_replaces_predictions(self):
        svc = await self._started(MOCK_FAIL_KINDS=["classifier"])
        first = await svc.select_upload("red.png", _png_bytes(), wait=True)
        second = await svc.select_gallery("cow", wait=True)
        self.assertGreater(second.id, first.id)
        state = svc.state()
        self.assertEqual(state.imageUri, "gallery/cow.jpg")
        self.assertEqual(state.statusMessage, "COCO-SSD is online")
        self.assertEqual(svc.coordinator.result_for(ModelKind.DETECTOR).image_id, second.id)
        self.assertEqual(state.detectorState.predictions[0].box.w, 16)
        self.assertEqual(state.classifierState.status, ModelStatus.FAILED)
        self.assertIsNone(state.classifierState.predictions)

    async def test_undecodable_upload(self):
        svc = await self._started()
        with self.assertRaises(ImageDecodeError):
            await svc.select_upload("notes.png", b"definitely not a png")
        state = svc.state()
        self.assertIsNotNone(state.imageError)
        self.assertIsNone(state.detectorState.predictions)

    async def test_oversized_upload_rejected_before_selection(self):
        svc = await self._started(MAX_UPLOAD_BYTES=10)
        with self.assertRaises(ImageDecodeError):
            await svc.select_upload("big.png", _png_bytes())
        self.assertIsNone(svc.image_source.current)

    async def test_unknown_and_missing_gallery(self):
        svc = await self._started()
        with self.assertRaises(KeyError):
            await svc.select_gallery("unicorn")
        with self.assertRaises(FileNotFoundError):
            await svc.select_gallery("pizza")

    def test_gallery_lists_presets(self):
        svc = VisionService(settings=self._settings())
        names = [g.name for g in svc.gallery()]
        self.assertEqual(len(names), 12)
        self.assertIn("schoolbus", names)

    async def test_unresolved_load_keeps_service_usable(self):
        never = asyncio.Event()
        svc = VisionService(settings=self._settings(), model_services={
            ModelKind.DETECTOR: FakeModelService(ModelKind.DETECTOR, gate=never),
            ModelKind.CLASSIFIER: FakeModelService(ModelKind.CLASSIFIER, StaticModel(GOLDEN)),
        })
        await asyncio.wait_for(svc.startup(), timeout=1)
        await settle()

        state = svc.state()
        self.assertEqual(state.statusMessage, "Loading...")
        self.assertEqual(state.statusSeverity, Severity.WARN)
        self.assertEqual(state.detectorState.status, ModelStatus.LOADING)
        self.assertEqual(state.classifierState.status, ModelStatus.READY)

        await asyncio.wait_for(svc.select_upload("red.png", _png_bytes(), wait=True), timeout=1)
        state = svc.state()
        self.assertEqual(state.classifierState.predictions[0].label, "golden retriever")
        self.assertIsNone(state.detectorState.predictions)
        self.assertEqual(state.detectorState.resultNotice, "COCO-SSD model unavailable.")

        load_task = svc._load_task
        await svc.shutdown()
        with self.assertRaises(asyncio.CancelledError):
            await load_task
        self.assertTrue(load_task.cancelled())


class _FakeUpload:
    def __init__(self, data: bytes, filename="big.png", content_type="image/png"):
        self.data = data
        self.filename = filename
        self.content_type = content_type
        self.read_sizes = []
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        self.read_sizes.append(size)
        return self.data if size < 0 else self.data[:size]

    async def close(self):
        self.closed = True


class UploadLimitTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_oversized_upload_read_is_bounded(self):
        svc = VisionService(settings=Settings(MODEL_BACKEND="mock", LOG_FILE=None, MAX_UPLOAD_BYTES=10))
        upload = _FakeUpload(b"x" * 1000)
        with self.assertRaises(HTTPException) as ctx:
            await upload_image(file=upload, wait=False, svc=svc)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(upload.read_sizes, [11])
        self.assertTrue(upload.closed)
        self.assertIsNone(svc.image_source.current)


if __name__ == "__main__":
    unittest.main()

"""
外部模型 service 的实现。协议：

    await service.load()            -> instance
    await instance.detect(image)    -> [{"class", "score", "bbox": [x, y, w, h]}]
    await instance.classify(image)  -> [{"className", "probability"}]

torchvision 后端在 load() 里才 import torch，保证 app 启动时不加载大依赖。
mock 后端返回固定结果，没有权重/GPU 的机器上也能跑通整个流程。
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from .imaging import DecodedImage
from .schemas import ModelKind

logger = logging.getLogger(__name__)


# ----------------------------
# torchvision
# ----------------------------
class TorchDetector:
    def __init__(self, model, preprocess, categories: Sequence[str], device: str,
                 min_score: float, max_boxes: int):
        self.model = model
        self.preprocess = preprocess
        self.categories = categories
        self.device = device
        self.min_score = min_score
        self.max_boxes = max_boxes

    def _detect_sync(self, image: DecodedImage) -> List[Dict[str, Any]]:
        import torch

        tensor = self.preprocess(image.pil).to(self.device)
        with torch.no_grad():
            out = self.model([tensor])[0]

        results = []
        for box, label, score in zip(out["boxes"].tolist(), out["labels"].tolist(), out["scores"].tolist()):
            if score < self.min_score:
                continue
            x1, y1, x2, y2 = box
            results.append({
                "class": self.categories[label],
                "score": float(score),
                "bbox": [x1, y1, x2 - x1, y2 - y1],
            })
        results.sort(key=lambda r: r["score"], reverse=True)
        return results[: self.max_boxes]

    async def detect(self, image: DecodedImage) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._detect_sync, image)


class TorchClassifier:
    def __init__(self, model, preprocess, categories: Sequence[str], device: str, top_k: int):
        self.model = model
        self.preprocess = preprocess
        self.categories = categories
        self.device = device
        self.top_k = top_k

    def _classify_sync(self, image: DecodedImage) -> List[Dict[str, Any]]:
        import torch

        batch = self.preprocess(image.pil).unsqueeze(0).to(self.device)
        with torch.no_grad():
            probs = self.model(batch).softmax(dim=1)[0]
        top = torch.topk(probs, k=min(self.top_k, probs.shape[0]))
        return [
            {"className": self.categories[idx], "probability": float(p)}
            for p, idx in zip(top.values.tolist(), top.indices.tolist())
        ]

    async def classify(self, image: DecodedImage) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._classify_sync, image)


class TorchDetectorService:
    kind = ModelKind.DETECTOR

    def __init__(self, device: str = "cpu", min_score: float = 0.5, max_boxes: int = 20):
        self.device = device
        self.min_score = min_score
        self.max_boxes = max_boxes

    def _load_sync(self) -> TorchDetector:
        from torchvision.models.detection import (
            SSDLite320_MobileNet_V3_Large_Weights,
            ssdlite320_mobilenet_v3_large,
        )

        weights = SSDLite320_MobileNet_V3_Large_Weights.DEFAULT
        model = ssdlite320_mobilenet_v3_large(weights=weights).to(self.device)
        model.eval()
        return TorchDetector(model, weights.transforms(), weights.meta["categories"],
                             self.device, self.min_score, self.max_boxes)

    async def load(self) -> TorchDetector:
        return await asyncio.to_thread(self._load_sync)


class TorchClassifierService:
    kind = ModelKind.CLASSIFIER

    def __init__(self, device: str = "cpu", top_k: int = 3):
        self.device = device
        self.top_k = top_k

    def _load_sync(self) -> TorchClassifier:
        from torchvision.models import MobileNet_V3_Large_Weights, mobilenet_v3_large

        weights = MobileNet_V3_Large_Weights.DEFAULT
        model = mobilenet_v3_large(weights=weights).to(self.device)
        model.eval()
        return TorchClassifier(model, weights.transforms(), weights.meta["categories"],
                               self.device, self.top_k)

    async def load(self) -> TorchClassifier:
        return await asyncio.to_thread(self._load_sync)


# ----------------------------
# mock
# ----------------------------
class MockDetector:
    async def detect(self, image: DecodedImage) -> List[Dict[str, Any]]:
        w, h = image.width, image.height
        return [
            {"class": "person", "score": 0.91, "bbox": [0.0, 0.0, w / 2, h / 2]},
            {"class": "dog", "score": 0.62, "bbox": [w / 4, h / 4, w / 2, h / 2]},
        ]


class MockClassifier:
    async def classify(self, image: DecodedImage) -> List[Dict[str, Any]]:
        return [
            {"className": "tabby, tabby cat", "probability": 0.71},
            {"className": "Egyptian cat", "probability": 0.18},
            {"className": "tiger cat", "probability": 0.06},
        ]


class MockModelService:
    def __init__(self, kind: ModelKind, delay_s: float = 0.0, fail: bool = False):
        self.kind = kind
        self.delay_s = delay_s
        self.fail = fail

    async def load(self):
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail:
            raise RuntimeError(f"mock {self.kind.value} configured to fail")
        return MockDetector() if self.kind is ModelKind.DETECTOR else MockClassifier()


def build_model_services(settings, backend: Optional[str] = None) -> Dict[ModelKind, Any]:
    backend = (backend or settings.MODEL_BACKEND).lower()
    logger.info("Model backend: %s", backend)
    if backend == "torchvision":
        return {
            ModelKind.DETECTOR: TorchDetectorService(
                device=settings.DEVICE,
                min_score=settings.DETECTOR_MIN_SCORE,
                max_boxes=settings.DETECTOR_MAX_BOXES,
            ),
            ModelKind.CLASSIFIER: TorchClassifierService(
                device=settings.DEVICE, top_k=settings.CLASSIFIER_TOP_K
            ),
        }
    if backend == "mock":
        fail = {k.lower() for k in settings.MOCK_FAIL_KINDS}
        return {
            kind: MockModelService(kind, delay_s=settings.MOCK_LOAD_DELAY_S, fail=kind.value in fail)
            for kind in ModelKind
        }
    raise ValueError(f"Unknown MODEL_BACKEND {backend}")

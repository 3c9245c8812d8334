import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.config import Settings, get_settings
from services.base import BaseService
from .backends import build_model_services
from .coordinator import InferenceCoordinator
from .errors import ImageDecodeError
from .image_source import ImageSource
from .imaging import decode_image, read_image_file
from .model_handle import ModelHandle
from .model_loader import ModelLoader
from .presenter import build_state
from .schemas import GalleryItem, ImageSourceToken, ModelKind, PresentationState

logger = logging.getLogger(__name__)


class VisionService(BaseService):
    """
    VisionService: 组合两个模型句柄、加载器、图片源和推理协调器。
    模型 service 可以通过构造器注入（测试里传假模型），例如：
        factory.register("vision", lambda **kw: VisionService(settings=settings, model_services={...}))
    """

    def __init__(self, settings: Optional[Settings] = None, model_services: Optional[Dict[ModelKind, Any]] = None):
        self.settings = settings or get_settings()
        model_services = model_services or build_model_services(self.settings)
        self.handles: Dict[ModelKind, ModelHandle] = {
            kind: ModelHandle(kind, model_services[kind]) for kind in ModelKind
        }
        self.loader = ModelLoader(self.handles)
        self.image_source = ImageSource()
        self.coordinator = InferenceCoordinator(self.handles, self.image_source)
        self.loader.add_listener(self.coordinator.on_model_settled)
        self._load_task: Optional[asyncio.Task] = None
        self._ready = False

    async def startup(self) -> None:
        # 不等待加载完成：load() 卡住时服务本身仍可用，状态保持 Loading...
        self._load_task = asyncio.get_running_loop().create_task(self.loader.load_all())
        self._ready = True

    async def shutdown(self) -> None:
        self._ready = False
        self.coordinator.close()
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()

    def info(self) -> Dict[str, Any]:
        current = self.image_source.current
        return {
            "name": "VisionService",
            "ready": self._ready,
            "models": [h.info() for h in self.handles.values()],
            "image_id": current.id if current else None,
            "inflight": self.coordinator.inflight,
        }

    def display_name(self, kind: ModelKind) -> str:
        return self.settings.display_name(kind.value)

    async def wait_until_loaded(self) -> None:
        if self._load_task is not None:
            await asyncio.shield(self._load_task)

    def state(self) -> PresentationState:
        return build_state(self.handles, self.image_source, self.coordinator, self.display_name)

    def gallery(self) -> List[GalleryItem]:
        return [
            GalleryItem(name=p.name, alt=p.alt, uri=f"gallery/{p.file}")
            for p in self.settings.GALLERY
        ]

    async def select_gallery(self, name: str, wait: bool = False) -> ImageSourceToken:
        preset = self.settings.get_preset(name)
        path = Path(self.settings.GALLERY_DIR) / preset.file
        if not path.is_file():
            raise FileNotFoundError(f"Gallery image missing: {path}")
        data = await read_image_file(path)
        return await self._select(f"gallery/{preset.file}", data, wait)

    async def select_upload(self, filename: str, data: bytes, wait: bool = False) -> ImageSourceToken:
        if len(data) > self.settings.MAX_UPLOAD_BYTES:
            raise ImageDecodeError(f"upload too large: {len(data)} bytes (max {self.settings.MAX_UPLOAD_BYTES})")
        uri = f"upload/{uuid.uuid4().hex}/{filename or 'image'}"
        return await self._select(uri, data, wait)

    async def _select(self, uri: str, data: bytes, wait: bool) -> ImageSourceToken:
        # 先换 token（清空旧结果），再解码；解码期间又有新选择时，旧图的推理不会发起
        token = self.image_source.select(uri)
        try:
            image = await decode_image(data)
        except ImageDecodeError as e:
            self.coordinator.on_image_failed(token, str(e))
            raise
        logger.info("Image %s decoded: %dx%d", token.id, image.width, image.height)
        self.coordinator.on_image_selected(token, image)
        if wait:
            await self.coordinator.drain()
        return token

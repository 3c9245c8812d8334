import asyncio
import logging
from typing import Callable, Dict, List

from .errors import ModelLoadError
from .model_handle import ModelHandle
from .schemas import ModelKind

logger = logging.getLogger(__name__)

SettledListener = Callable[[ModelHandle], None]


class ModelLoader:
    """
    并行加载两个模型，各自独立成功/失败。
    没有重试，也没有超时：load() 一直不返回时该模型保持 loading。
    """

    def __init__(self, handles: Dict[ModelKind, ModelHandle]):
        self.handles = handles
        self._listeners: List[SettledListener] = []
        self._started = False

    def add_listener(self, callback: SettledListener) -> None:
        self._listeners.append(callback)

    async def load_all(self) -> None:
        if self._started:
            raise RuntimeError("ModelLoader.load_all() may only run once")
        self._started = True
        await asyncio.gather(*(self._load_one(h) for h in self.handles.values()))
        logger.info("Model loading finished: %s", [h.info() for h in self.handles.values()])

    async def _load_one(self, handle: ModelHandle) -> None:
        handle.mark_loading()
        logger.info("Loading %s model ...", handle.kind.value)
        try:
            instance = await handle.service.load()
        except Exception as e:
            err = ModelLoadError(handle.kind.value, str(e) or type(e).__name__)
            handle.mark_failed(err.message)
            logger.warning("%s", err)
        else:
            handle.mark_ready(instance)
            logger.info("%s model loaded in %.2fms", handle.kind.value, handle.load_duration_ms)
        self._notify(handle)

    def _notify(self, handle: ModelHandle) -> None:
        for cb in self._listeners:
            try:
                cb(handle)
            except Exception:
                logger.exception("model settled listener failed for %s", handle.kind.value)

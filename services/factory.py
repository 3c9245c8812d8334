# services/factory.py
from __future__ import annotations
import asyncio
from functools import lru_cache
from typing import Callable, Dict, Optional, Any

from .base import BaseService
import logging

logger = logging.getLogger(__name__)


class ServiceFactory:
    """
    Service 注册表：注册构造器，按名字创建/获取单例，统一 startup/shutdown。

    用法示例:
        factory = get_service_factory()
        factory.register("vision", lambda **kw: VisionService(settings=settings, **kw))
        svc = factory.create("vision")
    """

    def __init__(self):
        self._registry: Dict[str, Callable[..., BaseService]] = {}
        self._instances: Dict[str, BaseService] = {}

    def register(self, name: str, ctor: Callable[..., BaseService]) -> None:
        if not callable(ctor):
            raise TypeError("ctor must be callable")
        logger.debug("Register service %s -> %s", name, getattr(ctor, "__name__", str(ctor)))
        self._registry[name] = ctor

    def create(self, name: str, *, force_new: bool = False, **kwargs: Any) -> BaseService:
        """
        创建或返回已存在实例。
        - force_new: 若 True 强制重新构造（覆盖旧实例）
        - kwargs: 传给构造器的参数
        """
        if name not in self._registry:
            raise KeyError(f"service '{name}' is not registered")

        if not force_new and name in self._instances:
            return self._instances[name]

        inst = self._registry[name](**kwargs)
        if not isinstance(inst, BaseService):
            raise TypeError("created object is not an instance of BaseService")

        self._instances[name] = inst
        logger.info("Service '%s' instantiated", name)
        return inst

    def get(self, name: str) -> Optional[BaseService]:
        return self._instances.get(name)

    def clear_instances(self) -> None:
        self._instances.clear()

    # ---------------- lifecycle ----------------
    async def startup_all(self) -> None:
        """
        实例化所有尚未创建的 service，并行调用 startup()。
        构造器里不要做重操作；模型加载应由 startup() 放到后台任务。
        """
        for name in list(self._registry.keys()):
            if name not in self._instances:
                try:
                    self.create(name)
                except Exception:
                    logger.exception("failed to instantiate service %s during startup_all", name)

        coros = [inst.startup() for inst in self._instances.values()]
        if coros:
            await asyncio.gather(*coros)
        logger.info("ServiceFactory: startup_all finished for %s", ", ".join(self._instances.keys()))

    async def shutdown_all(self) -> None:
        """并行调用 shutdown()；单个 service 的异常只记录，不影响其他 service。"""
        names = list(self._instances.keys())
        results = await asyncio.gather(
            *(self._instances[n].shutdown() for n in names), return_exceptions=True
        )
        for name, res in zip(names, results):
            if isinstance(res, BaseException):
                logger.error("service %s shutdown() failed: %s", name, res)
        logger.info("ServiceFactory: shutdown_all finished for %s", ", ".join(names))

    def info_all(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for name, inst in self._instances.items():
            try:
                out[name] = inst.info()
            except Exception:
                logger.exception("service %s info() failed", name)
                out[name] = {"error": True}
        return out


@lru_cache()
def get_service_factory() -> ServiceFactory:
    return ServiceFactory()

from abc import ABC, abstractmethod
from typing import Any, Dict


class BaseService(ABC):
    """
    所有 service 的生命周期接口。
    startup() 不应阻塞在耗时加载上：长时间的模型加载放到后台任务里，
    由 info() 报告当前进度。
    """

    @abstractmethod
    async def startup(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def shutdown(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def info(self) -> Dict[str, Any]:
        raise NotImplementedError

"""
每个模型一个 ModelHandle：持有外部模型 service、加载状态和加载耗时。
状态只由 ModelLoader 修改；其余组件只读。
"""
import time
from typing import Any, Dict, Optional

from .errors import InvalidTransition
from .schemas import ModelKind, ModelStatus

_ALLOWED = {
    ModelStatus.IDLE: {ModelStatus.LOADING},
    ModelStatus.LOADING: {ModelStatus.READY, ModelStatus.FAILED},
    ModelStatus.READY: set(),
    ModelStatus.FAILED: set(),
}


class ModelHandle:
    def __init__(self, kind: ModelKind, service: Any):
        self.kind = kind
        self.service = service
        self.status = ModelStatus.IDLE
        self.load_duration_ms: Optional[float] = None
        self.error_message: Optional[str] = None
        self.instance: Any = None
        self._started_at: Optional[float] = None

    @property
    def is_ready(self) -> bool:
        return self.status is ModelStatus.READY

    def _transition(self, target: ModelStatus) -> None:
        if target not in _ALLOWED[self.status]:
            raise InvalidTransition(self.kind.value, self.status.value, target.value)
        self.status = target

    def mark_loading(self) -> None:
        self._transition(ModelStatus.LOADING)
        self._started_at = time.perf_counter()

    def mark_ready(self, instance: Any) -> None:
        self._transition(ModelStatus.READY)
        self.instance = instance
        self.load_duration_ms = (time.perf_counter() - self._started_at) * 1000

    def mark_failed(self, message: str) -> None:
        self._transition(ModelStatus.FAILED)
        self.error_message = message

    def info(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "load_duration_ms": self.load_duration_ms,
            "error": self.error_message,
        }

    def __repr__(self) -> str:
        return f"ModelHandle(kind={self.kind.value}, status={self.status.value})"

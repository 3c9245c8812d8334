from typing import Callable, Optional

from .model_handle import ModelHandle
from .schemas import ModelKind, ModelStatus, Severity, StatusView

_PENDING = (ModelStatus.IDLE, ModelStatus.LOADING)


def _default_name(kind: ModelKind) -> str:
    return "COCO-SSD" if kind is ModelKind.DETECTOR else "MobileNet"


def project(detector: ModelHandle, classifier: ModelHandle,
            display_name: Optional[Callable[[ModelKind], str]] = None) -> StatusView:
    """两个模型状态 -> 页面顶部的一条状态信息"""
    name_of = display_name or _default_name

    if detector.status in _PENDING or classifier.status in _PENDING:
        return StatusView(message="Loading...", severity=Severity.WARN)

    if detector.is_ready and classifier.is_ready:
        return StatusView(message="Both models are online", severity=Severity.OK)

    for handle in (detector, classifier):
        if handle.is_ready:
            return StatusView(message=f"{name_of(handle.kind)} is online", severity=Severity.OK)

    return StatusView(message="Both models are offline", severity=Severity.ERROR)

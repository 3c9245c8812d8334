from typing import Callable, Dict, Optional

from .coordinator import InferenceCoordinator
from .image_source import ImageSource
from .model_handle import ModelHandle
from .schemas import (
    ModelKind,
    ModelStateView,
    ModelStatus,
    PredictionView,
    PresentationState,
)
from .status import project


def _model_state(handle: ModelHandle, coordinator: InferenceCoordinator,
                 has_image: bool, name: str) -> ModelStateView:
    kind = handle.kind
    duration_s = None
    if handle.load_duration_ms is not None:
        duration_s = round(handle.load_duration_ms / 1000, 2)

    if handle.status is ModelStatus.READY:
        load_notice = f"{name} Model loaded in {duration_s:.2f} seconds."
    elif handle.status is ModelStatus.FAILED:
        load_notice = f"{name} Model failed to load."
    else:
        load_notice = f"{name} Model is loading..."

    error = handle.error_message
    predictions = None
    result_notice: Optional[str] = None
    if has_image:
        result = coordinator.result_for(kind)
        inference_error = coordinator.error_for(kind)
        if not handle.is_ready:
            result_notice = f"{name} model unavailable."
        elif inference_error is not None:
            error = inference_error
            result_notice = f"{name} inference failed."
        elif result is not None:
            predictions = [
                PredictionView(label=p.label, confidence=round(p.confidence, 2), box=p.box)
                for p in result.items
            ]
            if not predictions:
                result_notice = f"No {name} predictions found."
        else:
            result_notice = f"Running {name}..."

    return ModelStateView(
        kind=kind,
        displayName=name,
        status=handle.status,
        loadDurationSeconds=duration_s,
        errorMessage=error,
        loadNotice=load_notice,
        resultNotice=result_notice,
        predictions=predictions,
    )


def build_state(handles: Dict[ModelKind, ModelHandle], image_source: ImageSource,
                coordinator: InferenceCoordinator,
                display_name: Callable[[ModelKind], str]) -> PresentationState:
    detector = handles[ModelKind.DETECTOR]
    classifier = handles[ModelKind.CLASSIFIER]
    status = project(detector, classifier, display_name)
    token = image_source.current
    # 解码失败的图片不显示任何模型结果
    has_image = token is not None and coordinator.image_error is None
    return PresentationState(
        statusMessage=status.message,
        statusSeverity=status.severity,
        imageId=token.id if token else None,
        imageUri=token.uri if token else None,
        imageError=coordinator.image_error,
        detectorState=_model_state(detector, coordinator, has_image, display_name(ModelKind.DETECTOR)),
        classifierState=_model_state(classifier, coordinator, has_image, display_name(ModelKind.CLASSIFIER)),
    )

# services/vision_service/schemas.py
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ModelKind(str, Enum):
    DETECTOR = "detector"
    CLASSIFIER = "classifier"


class ModelStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class Severity(str, Enum):
    OK = "ok"
    WARN = "warn"
    ERROR = "error"


class Box(BaseModel):
    x: float
    y: float
    w: float
    h: float


class Prediction(BaseModel):
    label: str = Field(..., description="类别名")
    confidence: float = Field(..., ge=0.0, le=1.0, description="置信度/概率")
    box: Optional[Box] = Field(None, description="检测框，仅 detector 有")


class PredictionSet(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    image_id: int
    model_kind: ModelKind
    items: List[Prediction]


class ImageSourceToken(BaseModel):
    """一次图片选择。id 单调递增，新的选择使旧 id 上的推理结果失效"""
    model_config = ConfigDict(frozen=True)

    id: int
    uri: str


class StatusView(BaseModel):
    message: str
    severity: Severity


class PredictionView(BaseModel):
    label: str
    confidence: float
    box: Optional[Box] = None


class ModelStateView(BaseModel):
    kind: ModelKind
    displayName: str
    status: ModelStatus
    loadDurationSeconds: Optional[float] = None
    errorMessage: Optional[str] = None
    loadNotice: str
    resultNotice: Optional[str] = None
    predictions: Optional[List[PredictionView]] = Field(
        None, description="null: 模型不可用或结果未返回；[]: 模型已运行但无结果"
    )


class PresentationState(BaseModel):
    statusMessage: str
    statusSeverity: Severity
    imageId: Optional[int] = None
    imageUri: Optional[str] = None
    imageError: Optional[str] = None
    detectorState: ModelStateView
    classifierState: ModelStateView


class GalleryItem(BaseModel):
    name: str
    alt: str
    uri: str


class SelectionResponse(BaseModel):
    token: ImageSourceToken
    state: PresentationState

"""
推理协调：图片解码完成后，对每个 ready 的模型各发起一次推理，
结果返回时用 token 校验，只提交当前图片的结果。

- 旧图片的推理不取消，返回后按 StaleResult 丢弃
- 单个模型推理失败只记录为该模型的错误，不影响另一个模型
- 模型在图片之后才加载完成时，对当前图片补跑一次推理
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import InferenceError, StaleResult
from .image_source import ImageSource
from .model_handle import ModelHandle
from .schemas import Box, ImageSourceToken, ModelKind, Prediction, PredictionSet

logger = logging.getLogger(__name__)


def _clamp01(value: Any) -> float:
    return min(max(float(value), 0.0), 1.0)


def to_predictions(kind: ModelKind, raw: Iterable[Mapping[str, Any]]) -> List[Prediction]:
    """把外部模型的原始输出转成 Prediction 列表，保持模型返回的顺序"""
    items: List[Prediction] = []
    for r in raw:
        if kind is ModelKind.DETECTOR:
            box = None
            bbox = r.get("bbox")
            if bbox is not None:
                x, y, w, h = bbox
                box = Box(x=x, y=y, w=w, h=h)
            items.append(Prediction(label=str(r["class"]), confidence=_clamp01(r["score"]), box=box))
        else:
            items.append(Prediction(label=str(r["className"]), confidence=_clamp01(r["probability"])))
    return items


class InferenceCoordinator:
    def __init__(self, handles: Dict[ModelKind, ModelHandle], image_source: ImageSource):
        self.handles = handles
        self.image_source = image_source
        self._results: Dict[ModelKind, Optional[PredictionSet]] = {k: None for k in handles}
        self._errors: Dict[ModelKind, Optional[str]] = {k: None for k in handles}
        self._image: Any = None
        self._image_token: Optional[ImageSourceToken] = None
        self._image_error: Optional[str] = None
        self._dispatched: Set[Tuple[int, ModelKind]] = set()
        self._tasks: Set[asyncio.Task] = set()
        image_source.add_listener(self.on_selection_changed)

    # ---------------- read side ----------------
    def result_for(self, kind: ModelKind) -> Optional[PredictionSet]:
        return self._results[kind]

    def error_for(self, kind: ModelKind) -> Optional[str]:
        return self._errors[kind]

    @property
    def image_error(self) -> Optional[str]:
        return self._image_error

    def is_pending(self, kind: ModelKind) -> bool:
        token = self.image_source.current
        if token is None or (token.id, kind) not in self._dispatched:
            return False
        return self._results[kind] is None and self._errors[kind] is None

    @property
    def inflight(self) -> int:
        return len(self._tasks)

    # ---------------- events ----------------
    def on_selection_changed(self, token: ImageSourceToken) -> None:
        """新选择：立即清空上一张图的结果，避免短暂显示旧结果"""
        for kind in self.handles:
            self._results[kind] = None
            self._errors[kind] = None
        self._image = None
        self._image_token = None
        self._image_error = None
        self._dispatched.clear()

    def on_image_failed(self, token: ImageSourceToken, message: str) -> None:
        if self.image_source.is_current(token):
            self._image_error = message
            logger.warning("Image %s could not be decoded: %s", token.id, message)

    def on_image_selected(self, token: ImageSourceToken, image: Any) -> List[asyncio.Task]:
        """图片解码完成后调用；返回本次发起的推理任务"""
        if not self.image_source.is_current(token):
            logger.debug("Image %s decoded after being superseded; skip inference", token.id)
            return []
        self._image = image
        self._image_token = token
        tasks = []
        for handle in self.handles.values():
            if not handle.is_ready:
                logger.info("Skip %s inference on image %s: model %s",
                            handle.kind.value, token.id, handle.status.value)
                continue
            task = self._dispatch(handle, token, image)
            if task is not None:
                tasks.append(task)
        return tasks

    def on_model_settled(self, handle: ModelHandle) -> None:
        if not handle.is_ready or self._image_token is None:
            return
        if not self.image_source.is_current(self._image_token):
            return
        logger.info("%s became ready after image %s was shown; running inference",
                    handle.kind.value, self._image_token.id)
        self._dispatch(handle, self._image_token, self._image)

    # ---------------- dispatch / commit ----------------
    def _dispatch(self, handle: ModelHandle, token: ImageSourceToken, image: Any) -> Optional[asyncio.Task]:
        key = (token.id, handle.kind)
        if key in self._dispatched:
            return None
        self._dispatched.add(key)
        task = asyncio.get_running_loop().create_task(self._run(handle, token, image))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Dispatched %s inference for image %s", handle.kind.value, token.id)
        return task

    async def _invoke(self, handle: ModelHandle, image: Any):
        if handle.kind is ModelKind.DETECTOR:
            return await handle.instance.detect(image)
        return await handle.instance.classify(image)

    async def _run(self, handle: ModelHandle, token: ImageSourceToken, image: Any) -> None:
        kind = handle.kind
        try:
            raw = await self._invoke(handle, image)
            items = to_predictions(kind, raw)
        except Exception as e:
            err = InferenceError(kind.value, token.id, str(e) or type(e).__name__)
            try:
                self._commit_error(err)
            except StaleResult as stale:
                logger.debug("%s", stale)
            return

        try:
            self._commit(PredictionSet(image_id=token.id, model_kind=kind, items=items))
        except StaleResult as stale:
            logger.debug("%s", stale)

    def _check_current(self, kind: str, image_id: int) -> None:
        if not self.image_source.is_current(image_id):
            current = self.image_source.current
            raise StaleResult(kind, image_id, current.id if current else None)

    def _commit(self, prediction_set: PredictionSet) -> None:
        kind = prediction_set.model_kind
        self._check_current(kind.value, prediction_set.image_id)
        self._results[kind] = prediction_set
        self._errors[kind] = None
        logger.info("Committed %d %s predictions for image %s",
                    len(prediction_set.items), kind.value, prediction_set.image_id)

    def _commit_error(self, err: InferenceError) -> None:
        self._check_current(err.kind, err.image_id)
        kind = ModelKind(err.kind)
        self._results[kind] = None
        self._errors[kind] = err.message
        logger.warning("%s", err)

    # ---------------- lifecycle ----------------
    async def drain(self) -> None:
        """等待所有在途推理结束（补跑的任务也包括在内）"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()

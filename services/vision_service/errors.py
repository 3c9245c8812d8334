from typing import Optional


class VisionError(Exception):
    pass


class InvalidTransition(VisionError):
    def __init__(self, kind: str, current: str, target: str):
        super().__init__(f"{kind}: illegal status transition {current} -> {target}")
        self.kind = kind
        self.current = current
        self.target = target


class ModelLoadError(VisionError):
    """模型加载失败：只让该模型降级为 failed，不影响另一个模型"""

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind} failed to load: {message}")
        self.kind = kind
        self.message = message


class InferenceError(VisionError):
    """某个模型在某张图上推理失败；另一个模型的结果照常提交"""

    def __init__(self, kind: str, image_id: int, message: str):
        super().__init__(f"{kind} inference failed on image {image_id}: {message}")
        self.kind = kind
        self.image_id = image_id
        self.message = message


class StaleResult(VisionError):
    """不是真正的错误：结果返回时图片已被替换，直接丢弃"""

    def __init__(self, kind: str, image_id: int, current_id: Optional[int]):
        super().__init__(f"{kind} result for image {image_id} is stale (current={current_id})")
        self.kind = kind
        self.image_id = image_id
        self.current_id = current_id


class ImageDecodeError(VisionError):
    pass

import itertools
import logging
from typing import Callable, List, Optional

from .schemas import ImageSourceToken

logger = logging.getLogger(__name__)


class ImageSource:
    """当前选中的图片。每次选择都换一个新的 token，旧 token 上的结果一律视为过期。"""

    def __init__(self):
        self._ids = itertools.count(1)
        self._current: Optional[ImageSourceToken] = None
        self._listeners: List[Callable[[ImageSourceToken], None]] = []

    @property
    def current(self) -> Optional[ImageSourceToken]:
        return self._current

    def add_listener(self, callback: Callable[[ImageSourceToken], None]) -> None:
        self._listeners.append(callback)

    def select(self, uri: str) -> ImageSourceToken:
        token = ImageSourceToken(id=next(self._ids), uri=uri)
        self._current = token
        logger.info("Image selected: id=%s uri=%s", token.id, uri)
        for cb in self._listeners:
            cb(token)
        return token

    def is_current(self, token_or_id) -> bool:
        if self._current is None:
            return False
        image_id = getattr(token_or_id, "id", token_or_id)
        return image_id == self._current.id

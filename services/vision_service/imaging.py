import asyncio
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import ImageDecodeError


@dataclass
class DecodedImage:
    """解码完成的图片；width/height 为原始尺寸"""

    pil: Image.Image
    width: int
    height: int


def _decode(data: bytes) -> DecodedImage:
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"cannot decode image: {e}") from e
    return DecodedImage(pil=rgb, width=rgb.width, height=rgb.height)


async def decode_image(data: bytes) -> DecodedImage:
    if not data:
        raise ImageDecodeError("empty image payload")
    return await asyncio.to_thread(_decode, data)


async def read_image_file(path: Path) -> bytes:
    return await asyncio.to_thread(Path(path).read_bytes)

import logging
import time
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from services.factory import get_service_factory, ServiceFactory
from .errors import ImageDecodeError
from .schemas import GalleryItem, PresentationState, SelectionResponse
from .service import VisionService

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_factory() -> ServiceFactory:
    return get_service_factory()


def _get_service(factory: ServiceFactory = Depends(_get_factory)) -> VisionService:
    try:
        return factory.create("vision")
    except KeyError:
        logger.error("Vision service not registered")
        raise HTTPException(status_code=500, detail="vision service 未注册")


@router.get("/state", response_model=PresentationState)
async def get_state(svc: VisionService = Depends(_get_service)):
    return svc.state()


@router.get("/gallery", response_model=List[GalleryItem])
async def get_gallery(svc: VisionService = Depends(_get_service)):
    return svc.gallery()


@router.post("/gallery/{name}", response_model=SelectionResponse)
async def select_gallery(name: str, wait: bool = False, svc: VisionService = Depends(_get_service)):
    logger.info("Received /vision/gallery/%s request: wait=%s", name, wait)

    start_pc = time.perf_counter()
    try:
        token = await svc.select_gallery(name, wait=wait)
    except KeyError as e:
        logger.warning("gallery select unknown preset: %s", e)
        raise HTTPException(status_code=404, detail=f"未知的图片: {name}")
    except FileNotFoundError as e:
        logger.warning("gallery select missing file: %s", e)
        raise HTTPException(status_code=404, detail=str(e))
    except ImageDecodeError as e:
        logger.warning("gallery select decode error: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("gallery select unexpected error: %s; name=%s", e, name)
        raise HTTPException(status_code=500, detail=f"内部错误: {e}")

    elapsed_ms = (time.perf_counter() - start_pc) * 1000
    logger.info("gallery select success: name=%s image_id=%s elapsed_ms=%.2fms", name, token.id, elapsed_ms)
    return SelectionResponse(token=token, state=svc.state())


@router.post("/upload", response_model=SelectionResponse)
async def upload_image(file: UploadFile = File(...), wait: bool = False,
                       svc: VisionService = Depends(_get_service)):
    logger.info("Received /vision/upload request: filename=%s content_type=%s wait=%s",
                file.filename, file.content_type, wait)

    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail=f"不支持的文件类型: {file.content_type}")

    start_pc = time.perf_counter()
    try:
        # 最多多读 1 字节，超限由 select_upload 拒绝，不把整个大文件读进内存
        data = await file.read(svc.settings.MAX_UPLOAD_BYTES + 1)
        token = await svc.select_upload(file.filename, data, wait=wait)
    except ImageDecodeError as e:
        elapsed_ms = (time.perf_counter() - start_pc) * 1000
        logger.warning("upload decode error: %s; filename=%s; elapsed_ms=%.2fms", e, file.filename, elapsed_ms)
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        elapsed_ms = (time.perf_counter() - start_pc) * 1000
        logger.exception("upload unexpected error: %s; filename=%s; elapsed_ms=%.2fms", e, file.filename, elapsed_ms)
        raise HTTPException(status_code=500, detail=f"内部错误: {e}")
    finally:
        await file.close()

    elapsed_ms = (time.perf_counter() - start_pc) * 1000
    logger.info("upload success: filename=%s image_id=%s elapsed_ms=%.2fms", file.filename, token.id, elapsed_ms)
    return SelectionResponse(token=token, state=svc.state())

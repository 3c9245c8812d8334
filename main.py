from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from services.factory import get_service_factory
from services.vision_service import register as register_vision, router as vision_router
from core.config import get_settings
from core.logging import setup_logging

setup_logging()
settings = get_settings()
factory = get_service_factory()

service_kwargs = dict()

app = FastAPI(title=settings.APP_NAME)
app.include_router(vision_router, prefix="/vision", tags=["vision"])
# GalleryItem.uri ("gallery/<file>") 指向这里；图片在部署时放进 GALLERY_DIR
app.mount("/gallery", StaticFiles(directory=str(settings.GALLERY_DIR), check_dir=False), name="gallery")


@app.get("/")
def health():
    return {"app": settings.APP_NAME, "services": factory.info_all()}


@app.on_event("startup")
async def startup():
    register_vision(factory, settings=settings, **service_kwargs)

    await factory.startup_all()


@app.on_event("shutdown")
async def shutdown():
    await factory.shutdown_all()
    factory.clear_instances()

from .api import router
from .service import VisionService

__all__ = ["router", "VisionService"]


def register(factory, settings=None, **service_kwargs):

    factory.register("vision", lambda **kw: VisionService(settings=settings, **{**service_kwargs, **kw}))

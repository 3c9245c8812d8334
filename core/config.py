from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from functools import lru_cache


BASE_DIR = Path(__file__).resolve().parent.parent


class GalleryPreset(BaseModel):
    name: str
    alt: str
    file: str


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 基本环境
    APP_ENV: str = "test"   # e.g. "prod" or "test" or "dev"
    APP_NAME: str = "vision_dual"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "vision_dual_server.log"

    # Models
    MODEL_BACKEND: str = "torchvision"   # "torchvision" | "mock"
    DEVICE: str = "cpu"
    DETECTOR_NAME: str = "COCO-SSD"
    CLASSIFIER_NAME: str = "MobileNet"
    DETECTOR_MIN_SCORE: float = Field(0.5, ge=0.0, le=1.0)
    DETECTOR_MAX_BOXES: int = Field(20, gt=0)
    CLASSIFIER_TOP_K: int = Field(3, gt=0)

    # mock backend
    MOCK_LOAD_DELAY_S: float = 0.0
    MOCK_FAIL_KINDS: List[str] = []

    # Images
    GALLERY_DIR: Path = BASE_DIR / "static" / "gallery"
    GALLERY: List[GalleryPreset] = [
        GalleryPreset(name="cow", alt="Cow", file="cow.jpg"),
        GalleryPreset(name="pizza", alt="Pizza", file="pizza.jpg"),
        GalleryPreset(name="schoolbus", alt="School Bus", file="schoolbus.png"),
        GalleryPreset(name="beach", alt="Beach", file="beach.jpg"),
        GalleryPreset(name="burger", alt="Burger", file="burger.jpeg"),
        GalleryPreset(name="strawberry", alt="Strawberry", file="strawberry.jpg"),
        GalleryPreset(name="tennisball", alt="Tennis Ball", file="tennisball.jpg"),
        GalleryPreset(name="phone", alt="Phone", file="phone.jpg"),
        GalleryPreset(name="dog", alt="Dog", file="dog.jpg"),
        GalleryPreset(name="apple", alt="Apple", file="apple.jpg"),
        GalleryPreset(name="icecream", alt="Ice Cream", file="icecream.jpg"),
        GalleryPreset(name="dumbbell", alt="Dumbbells", file="dumbbell.jpg"),
    ]
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    def get_preset(self, name: str) -> GalleryPreset:
        for preset in self.GALLERY:
            if preset.name == name:
                return preset
        raise KeyError(f"Gallery preset not found: {name}")

    def display_name(self, kind: str) -> str:
        return self.DETECTOR_NAME if kind == "detector" else self.CLASSIFIER_NAME


@lru_cache()
def get_settings() -> Settings:
    return Settings()

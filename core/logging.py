# core/logging.py
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None):
    """
    控制台输出 + 可选滚动日志文件（settings.LOG_FILE 为空时不写文件）。
    模型加载耗时、推理分发/提交、过期结果丢弃都走这里配置的 root logger。
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(level)

    # 清理预先存在的 handlers（避免重复）
    for h in list(root.handlers):
        root.removeHandler(h)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    root.addHandler(ch)

    if settings.LOG_FILE:
        fh = RotatingFileHandler(settings.LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    # torch / PIL 的调试日志太吵
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)

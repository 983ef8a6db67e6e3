"""
日志模块

使用 loguru 提供统一的日志记录功能。
"""

import os
import sys
from typing import Optional

from loguru import logger

from modinstaller.exceptions import ModInstallerError


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stdout,
    enqueue: bool = True,
    colorize: bool = True,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
        sink: 输出目标
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色
    """
    if level is None:
        level = (
            "DEBUG" if os.environ.get("MODINSTALLER_DEBUG", "0") == "1" else "INFO"
        )

    logger.remove()

    logger.add(
        sink=sink,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


def log_error(prefix: str, error: BaseException) -> None:
    """
    记录错误的完整内部信息

    用户看到的是 user_message，日志中始终保留错误代码和上下文。
    """
    if isinstance(error, ModInstallerError):
        logger.error(f"[错误] {prefix}: {error} | 详情: {error.to_dict()}")
    else:
        logger.opt(exception=error).error(f"[错误] {prefix}: {error}")


__all__ = ["logger", "setup_logger", "log_error"]

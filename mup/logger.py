"""
日志模块

使用 loguru 输出日志。日志写到 stderr，stdout 只留给命令的结果输出；
设置 MUP_LOG_FILE 时额外写入按大小轮转的日志文件。
"""

import os
import sys
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logger(
    level: Optional[str] = None,
    sink=None,
    log_file: Optional[str] = None,
    enqueue: bool = True,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别，未指定时由 MUP_DEBUG 环境变量决定
        sink: 控制台输出目标，默认 stderr
        log_file: 日志文件路径，默认读取 MUP_LOG_FILE
        enqueue: 是否经由队列写入
    """
    if level is None:
        level = "DEBUG" if os.environ.get("MUP_DEBUG", "0") == "1" else "INFO"
    debug = level == "DEBUG"

    logger.remove()
    logger.add(
        sink=sink or sys.stderr,
        format=CONSOLE_FORMAT,
        enqueue=enqueue,
        level=level,
        backtrace=debug,
        diagnose=debug,
    )

    log_file = log_file or os.environ.get("MUP_LOG_FILE")
    if log_file:
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="5 MB",
            retention=3,
            encoding="utf-8",
            enqueue=enqueue,
        )

    if debug:
        logger.debug("DEBUG 模式已启用")


__all__ = ["logger", "setup_logger"]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:33
# @Author  : hejun
"""
日志记录工具

各模块通过 setup_logging('<模块>.py').get_logger() 获取记录器，统一挂在 fleet_correlation 命名空间下。
环境变量 FLEET_LOG_DIR 设置后同时写入日志文件，FLEET_LOG_LEVEL 控制级别（默认 INFO）。
"""
import copy
import logging
import os
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

ROOT_LOGGER_NAME = 'fleet_correlation'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s - [%(lineno)d] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """彩色日志格式化器（只给控制台用）"""

    # ANSI颜色代码
    COLORS = {
        'DEBUG': '\033[36m',  # 青色
        'INFO': '\033[32m',  # 绿色
        'WARNING': '\033[33m',  # 黄色
        'ERROR': '\033[31m',  # 红色
        'CRITICAL': '\033[35m',  # 紫色
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        # 同一条记录还会交给文件处理器，只在副本上着色
        colored = copy.copy(record)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _level_from_env(default: int) -> int:
    name = os.getenv('FLEET_LOG_LEVEL')
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


class Logger:
    """日志记录器"""

    def __init__(self, name: str,
                 log_dir: Optional[str] = None,
                 level: int = logging.INFO,
                 console: bool = True):
        """
        初始化日志记录器

        Args:
            name: 模块名，如 'correlation_engine.py'
            log_dir: 日志目录，None时读取 FLEET_LOG_DIR，均未设置则不写文件
            level: 日志级别（FLEET_LOG_LEVEL 优先）
            console: 是否输出到控制台
        """
        module = name[:-3] if name.endswith('.py') else name
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{module}")
        level = _level_from_env(level)
        self.logger.setLevel(level)
        self.logger.handlers.clear()  # 重复导入时避免处理器叠加

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(console_handler)

        self.log_file = None
        log_dir = log_dir or os.getenv('FLEET_LOG_DIR')
        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            self.log_file = log_dir / f"{module}_{timestamp}.log"

            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(file_handler)

    def get_logger(self) -> logging.Logger:
        """获取日志记录器实例"""
        return self.logger


def setup_logging(name: str = 'main.py',
                  log_dir: Optional[str] = None,
                  level: int = logging.INFO) -> Logger:
    """快速设置日志记录"""
    return Logger(name, log_dir, level)

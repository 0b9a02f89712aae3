#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/8 10:02
# @Author  : hejun
"""
异常定义

输入缺陷（单条记录坏数据）在本地跳过；配置缺陷（注册表为空、参数非法、
协作方不可用）是致命的，整次运行失败且不留下部分输出。
"""
from typing import Optional


class CorrelationEngineError(Exception):
    """关联引擎基础异常"""


class ConfigurationError(CorrelationEngineError):
    """致命的配置缺陷，消息中包含不可用的协作方或非法参数名"""

    def __init__(self, message: str, collaborator: Optional[str] = None):
        self.collaborator = collaborator
        if collaborator:
            message = f"[{collaborator}] {message}"
        super().__init__(message)


class InputDefectError(CorrelationEngineError):
    """单条输入记录缺陷（坐标缺失、日期无法解析等）"""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message)


class InvalidTransitionError(CorrelationEngineError):
    """POI状态迁移非法"""

    def __init__(self, poi_id: str, current: str, target: str):
        self.poi_id = poi_id
        self.current = current
        self.target = target
        super().__init__(f"POI {poi_id} 不能从 {current} 迁移到 {target}")

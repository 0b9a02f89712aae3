#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:15
# @Author  : hejun
"""
并行处理模块
行程级关联与起终点两次聚类的并行执行
"""
import multiprocessing as mp
from concurrent.futures import ThreadPoolExecutor
from typing import List, Dict, Any, Callable, Optional

import psutil
from joblib import Parallel, delayed
from tqdm import tqdm

from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('parallel_processor.py').get_logger()


class ParallelProcessor:
    """并行处理器"""

    def __init__(self, n_jobs: Optional[int] = None, min_parallel_items: int = 100):
        """
        初始化并行处理器

        Args:
            n_jobs: 并行任务数，None表示自动检测
            min_parallel_items: 少于该数量时串行处理
        """
        if n_jobs is None:
            # 自动检测：使用CPU核心数-2，至少为1
            self.n_jobs = max(1, mp.cpu_count() - 2)
        else:
            self.n_jobs = max(1, n_jobs)
        self.min_parallel_items = min_parallel_items

    def batch_process(self,
                      data: List[Any],
                      process_func: Callable,
                      batch_size: int = 1000,
                      desc: str = "Processing") -> List[Any]:
        """
        批量并行处理数据，结果顺序与输入一致，任一任务异常即向上抛出

        Args:
            data: 数据列表
            process_func: 处理函数
            batch_size: 批处理大小
            desc: 进度描述

        Returns:
            处理结果列表
        """
        total_items = len(data)
        if total_items == 0:
            return []

        logger.info(f"{desc}: 共 {total_items:,} 条数据，批处理大小: {batch_size}，并行数: {self.n_jobs}")

        if self.n_jobs == 1 or total_items < self.min_parallel_items:
            return [process_func(item) for item in data]

        results = []
        for batch_start in tqdm(range(0, total_items, batch_size), desc=desc):
            batch = data[batch_start:batch_start + batch_size]
            results.extend(Parallel(n_jobs=self.n_jobs)(delayed(process_func)(item) for item in batch))
        return results

    def run_independent(self, tasks: List[Callable[[], Any]]) -> List[Any]:
        """
        并行执行互不依赖的任务（线程池），按提交顺序返回结果

        Args:
            tasks: 无参可调用对象列表

        Returns:
            结果列表
        """
        if self.n_jobs == 1 or len(tasks) < 2:
            return [task() for task in tasks]

        with ThreadPoolExecutor(max_workers=min(self.n_jobs, len(tasks))) as executor:
            futures = [executor.submit(task) for task in tasks]
            return [future.result() for future in futures]

    def get_system_info(self) -> Dict[str, Any]:
        """获取系统信息"""
        memory = psutil.virtual_memory()

        return {
            'cpu_count': mp.cpu_count(),
            'cpu_usage': psutil.cpu_percent(),
            'memory_total_gb': memory.total / (1024 ** 3),
            'memory_available_gb': memory.available / (1024 ** 3),
            'memory_used_percent': memory.percent,
            'n_jobs': self.n_jobs,
        }

# main.py
#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************#
# @Time    : 2025/12/6 0:11
# @Author  : JonHe
# Function :
# ****************************************************************#
"""
行程-交付关联引擎主程序
从CSV数据源读取行程、码头、客户与交付记录，执行POI发现、混合关联和路线模式聚合，
结果写入数据库（可选）与输出目录
"""
import argparse
import copy
import sys
import time
from datetime import datetime, date
from pathlib import Path
from typing import List, Dict, Any, Optional

import pandas as pd

from config.config import Config
from core.alias_lookup import AliasResolver
from core.clustering import PoiDiscovery, summarize_pois
from core.correlation_engine import HybridCorrelationEngine, CorrelationSettings, CorrelationRun
from core.exceptions import CorrelationEngineError
from core.geospatial_matcher import ReferenceRegistry, GeospatialMatcher
from core.poi_registry import PoiRegistry
from core.route_patterns import RoutePatternAggregator
from core.similarity_calculator import SmartTextMatcher
from utils.db_handler import DatabaseHandler
from utils.file_utils import FileUtils
from utils.logger import setup_logging
from utils.parallel_processor import ParallelProcessor

# 初始化日志记录器
logger = setup_logging('main.py').get_logger()


class FleetCorrelationSystem:
    """行程-交付关联系统"""

    def __init__(self, data_dir: Optional[str] = None,
                 algorithm_config: Optional[Dict[str, Any]] = None,
                 database_config: Optional[Dict[str, Any]] = None,
                 output_dir: Optional[str] = None):
        self.data_dir = Path(data_dir) if data_dir else Config.DATA_DIR
        self.output_dir = FileUtils.ensure_directory(output_dir or Config.OUTPUT_DIR)
        self.config = algorithm_config or copy.deepcopy(Config.ALGORITHM_CONFIG)
        self.feed_files = Config.IO_CONFIG['feed_files']
        self.date_formats = Config.IO_CONFIG['date_formats']

        n_jobs = self.config.get('performance', {}).get('n_jobs')
        self.processor = ParallelProcessor(n_jobs=n_jobs)
        logger.info(f"系统信息: {self.processor.get_system_info()}")

        self.db_handler = None
        if database_config and database_config.get('url'):
            self.db_handler = DatabaseHandler(database_config)

    def connect_database(self):
        """连接数据库（未配置URL时只输出文件）"""
        if self.db_handler:
            self.db_handler.connect()
            self.db_handler.create_tables()

    def _feed(self, name: str) -> Path:
        return self.data_dir / self.feed_files[name]

    def _build_engine(self, settings: CorrelationSettings) -> HybridCorrelationEngine:
        terminals = FileUtils.load_terminals(self._feed('terminals'))
        customers = FileUtils.load_customers(self._feed('customers'))
        registry = ReferenceRegistry(terminals, customers)
        resolver = AliasResolver.from_records(FileUtils.load_aliases(self._feed('business_aliases')),
                                              FileUtils.load_aliases(self._feed('terminal_aliases')),
                                              self.config)
        logger.info(f"参考数据: 码头 {len(terminals)}，客户 {len(customers)}，别名 {resolver.get_stats()}")
        return HybridCorrelationEngine(GeospatialMatcher(registry, self.config),
                                       SmartTextMatcher(self.config), resolver, settings, self.config)

    def process_poi_discovery(self, epsilon_meters: float = None, min_points: int = None,
                              min_idle_minutes: float = None, clear_existing: bool = None) -> Dict[str, Any]:
        """
        POI发现

        Returns:
            发现结果摘要
        """
        logger.info("开始POI发现...")
        start_time = time.time()

        trips = FileUtils.load_trips(self._feed('trips'))
        existing = FileUtils.load_pois(self._feed('pois'))
        discovery = PoiDiscovery(self.config, self.processor)
        result = discovery.discover(trips, epsilon_meters, min_points, min_idle_minutes,
                                    clear_existing, existing)

        FileUtils.save_dataframe(summarize_pois(result.pois), self.output_dir / 'discovered_pois.csv')
        if self.db_handler:
            self.db_handler.save_discovered_pois(result.new_pois, result.parameters['clear_existing'])

        summary = result.to_summary()
        logger.info(f"POI发现完成，耗时: {time.time() - start_time:.2f}秒，{summary['message']}")
        return summary

    def process_correlations(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                             **overrides) -> CorrelationRun:
        """
        混合关联

        Args:
            start_date: 行程起始日期
            end_date: 行程截止日期
            overrides: 关联参数覆盖

        Returns:
            CorrelationRun
        """
        logger.info(f"开始混合关联: {start_date} ~ {end_date}")
        start_time = time.time()

        settings = CorrelationSettings.from_config(self.config, **overrides)
        engine = self._build_engine(settings)
        trips = FileUtils.load_trips(self._feed('trips'))
        deliveries = FileUtils.load_deliveries(self._feed('deliveries'), self.date_formats)

        run = engine.correlate_trips(trips, deliveries, start_date, end_date, n_jobs=self.processor.n_jobs)

        # 先写数据库（单事务），成功后再输出文件
        if self.db_handler:
            self.db_handler.replace_correlations(run.correlations, start_date, end_date)
        FileUtils.save_dataframe(run.to_dataframe(), self.output_dir / 'correlations.csv')
        FileUtils.save_dataframe(pd.DataFrame(run.summaries()), self.output_dir / 'correlation_summary.csv')

        logger.info(f"混合关联完成，耗时: {time.time() - start_time:.2f}秒，关联 {len(run.correlations)} 条")
        return run

    def process_route_patterns(self, min_trip_count: int = None) -> List[Dict[str, Any]]:
        """
        路线模式聚合（全量重算）

        Returns:
            路线模式字典列表
        """
        logger.info("开始路线模式聚合...")
        start_time = time.time()

        trips = FileUtils.load_trips(self._feed('trips'))
        registry = PoiRegistry(FileUtils.load_pois(self._feed('pois')))
        patterns = RoutePatternAggregator(self.config).aggregate(trips, registry, min_trip_count)

        if self.db_handler:
            self.db_handler.replace_route_patterns(patterns)
        rows = [pattern.to_dict() for pattern in patterns]
        FileUtils.save_dataframe(pd.DataFrame(rows), self.output_dir / 'route_patterns.csv')

        logger.info(f"路线模式聚合完成，耗时: {time.time() - start_time:.2f}秒，路线 {len(patterns)} 条")
        return rows

    def close(self):
        """关闭系统"""
        if self.db_handler:
            self.db_handler.disconnect()


def _parse_date(value: str) -> date:
    return datetime.strptime(value, '%Y-%m-%d').date()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='行程-交付关联引擎')
    parser.add_argument('command', choices=['discover-poi', 'correlate', 'route-patterns'],
                        help='执行的任务')
    parser.add_argument('--data-dir', help='CSV数据源目录')
    parser.add_argument('--output-dir', help='输出目录')
    parser.add_argument('--database-url', help='SQLAlchemy数据库URL，如 sqlite:///fleet.db')
    parser.add_argument('--n-jobs', type=int, help='并行任务数')

    # POI发现
    parser.add_argument('--epsilon-meters', type=float, help='聚类邻域半径（米）')
    parser.add_argument('--min-points', type=int, help='聚类最小点数')
    parser.add_argument('--min-idle-minutes', type=float, help='最小怠速时长（分钟）')
    parser.add_argument('--clear-existing', action='store_true', default=None,
                        help='清除仍为discovered状态的历史POI')

    # 混合关联
    parser.add_argument('--start-date', type=_parse_date, help='行程起始日期 YYYY-MM-DD')
    parser.add_argument('--end-date', type=_parse_date, help='行程截止日期 YYYY-MM-DD')
    parser.add_argument('--date-tolerance-days', type=int, help='日期容差（天）')
    parser.add_argument('--max-distance-km', type=float, help='空间搜索半径（公里）')
    parser.add_argument('--min-confidence', type=int, help='最低总置信度')
    parser.add_argument('--disable-text', action='store_true', help='关闭文本信号')
    parser.add_argument('--disable-geo', action='store_true', help='关闭空间信号')
    parser.add_argument('--disable-temporal', action='store_true', help='关闭时间信号')
    parser.add_argument('--disable-lookup-boost', action='store_true', help='关闭别名加分')

    # 路线模式
    parser.add_argument('--min-trip-count', type=int, help='路线最少行程数')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    args = build_parser().parse_args(argv)

    algorithm_config = copy.deepcopy(Config.ALGORITHM_CONFIG)
    if args.n_jobs:
        algorithm_config['performance']['n_jobs'] = args.n_jobs
    database_config = dict(Config.DATABASE_CONFIG)
    if args.database_url:
        database_config['url'] = args.database_url

    system = FleetCorrelationSystem(args.data_dir, algorithm_config, database_config, args.output_dir)

    try:
        system.connect_database()

        if args.command == 'discover-poi':
            summary = system.process_poi_discovery(args.epsilon_meters, args.min_points,
                                                   args.min_idle_minutes, args.clear_existing)
            print(summary['message'])
        elif args.command == 'correlate':
            run = system.process_correlations(
                args.start_date, args.end_date,
                date_tolerance_days=args.date_tolerance_days,
                max_distance_km=args.max_distance_km,
                min_confidence=args.min_confidence,
                enable_text_matching=False if args.disable_text else None,
                enable_geospatial=False if args.disable_geo else None,
                enable_temporal=False if args.disable_temporal else None,
                enable_lookup_boost=False if args.disable_lookup_boost else None,
            )
            print(f"关联 {len(run.correlations)} 条，行程 {run.trips_processed} 个")
        else:
            rows = system.process_route_patterns(args.min_trip_count)
            print(f"路线模式 {len(rows)} 条")
        return 0

    except CorrelationEngineError as e:
        logger.error(f"处理过程中发生致命错误: {e}")
        return 1
    finally:
        # 关闭系统
        system.close()


if __name__ == "__main__":
    sys.exit(main())

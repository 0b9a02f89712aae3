#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************#
# @Time    : 2025/12/6 0:08
# @Author  : JonHe
# Function :
# ****************************************************************#
"""
数据库处理模块
保存关联结果、POI和路线模式；每类输出在单个事务内整体替换
"""
import json
from datetime import date, datetime
from typing import Dict, List, Any, Optional

import pandas as pd
from sqlalchemy import (create_engine, text, MetaData, Table, Column, String, Integer, Float,
                        Boolean, Date, DateTime, Text, select)
from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from core.exceptions import ConfigurationError
from core.models import Correlation, DiscoveredPOI, RoutePattern, POIStatus
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('db_handler.py').get_logger()

metadata = MetaData()

correlations_table = Table(
    'trip_delivery_correlations', metadata,
    Column('id', String(36), primary_key=True),
    Column('trip_id', String(64), nullable=False, index=True),
    Column('delivery_id', String(64), nullable=False),
    Column('trip_date', Date, nullable=False, index=True),
    Column('delivery_date', Date),
    Column('customer_name', String(255)),
    Column('terminal_name', String(255)),
    Column('overall_confidence', Integer, nullable=False),
    Column('confidence_breakdown', Text),
    Column('match_methods', Text),
    Column('match_quality', String(16)),
    Column('text_confidence', Integer),
    Column('text_match_method', String(64)),
    Column('business_identifier_match', Boolean),
    Column('location_reference_match', Boolean),
    Column('geo_confidence', Integer),
    Column('terminal_distance_km', Float),
    Column('within_service_area', Boolean),
    Column('matching_trip_point', String(8)),
    Column('temporal_confidence', Integer),
    Column('date_difference_days', Integer),
    Column('quality_flags', Text),
    Column('requires_manual_review', Boolean),
    Column('delivery_volume_litres', Float),
    Column('created_at', DateTime),
)

pois_table = Table(
    'discovered_pois', metadata,
    Column('id', String(36), primary_key=True),
    Column('centroid_latitude', Float, nullable=False),
    Column('centroid_longitude', Float, nullable=False),
    Column('trip_count', Integer),
    Column('start_point_count', Integer),
    Column('end_point_count', Integer),
    Column('avg_idle_time_hours', Float),
    Column('total_idle_time_hours', Float),
    Column('gps_accuracy_meters', Float),
    Column('confidence_score', Integer),
    Column('classification_status', String(16), index=True),
    Column('poi_type', String(16)),
    Column('suggested_name', String(255)),
    Column('service_radius_km', Float),
    Column('actual_name', String(255)),
    Column('matched_terminal_id', String(64)),
    Column('matched_customer_id', String(64)),
    Column('merged_into_id', String(36)),
    Column('first_seen', DateTime),
    Column('last_seen', DateTime),
    Column('cluster_id', Integer),
)

routes_table = Table(
    'route_patterns', metadata,
    Column('id', String(36), primary_key=True),
    Column('route_hash', String(32), index=True),
    Column('start_poi_id', String(36)),
    Column('end_poi_id', String(36)),
    Column('start_location', String(255)),
    Column('end_location', String(255)),
    Column('route_type', String(32)),
    Column('data_quality_tier', String(16)),
    Column('trip_count', Integer),
    Column('average_distance_km', Float),
    Column('min_distance_km', Float),
    Column('max_distance_km', Float),
    Column('average_travel_time_hours', Float),
    Column('best_time_hours', Float),
    Column('worst_time_hours', Float),
    Column('time_variability', Float),
    Column('efficiency_rating', Integer),
    Column('most_common_vehicle', String(64)),
    Column('most_common_driver', String(255)),
    Column('first_trip_date', Date),
    Column('last_trip_date', Date),
    Column('straight_line_distance_km', Float),
    Column('route_deviation_ratio', Float),
    Column('avg_gps_accuracy_meters', Float),
    Column('avg_loading_time_hours', Float),
    Column('avg_delivery_time_hours', Float),
    Column('start_poi_confidence', Integer),
    Column('end_poi_confidence', Integer),
    Column('has_return_route', Boolean),
)

JSON_COLUMNS = ('confidence_breakdown', 'match_methods', 'quality_flags')


class DatabaseHandler:
    """数据库处理器（输出仓库）"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.engine = None
        self.batch_size = self.config.get('batch_size', 2000)

    def _connection_string(self) -> str:
        if self.config.get('url'):
            return self.config['url']
        return (
            f"mysql+pymysql://{self.config['user']}:{self.config['password']}"
            f"@{self.config['host']}:{self.config['port']}/{self.config['database']}"
            f"?charset={self.config.get('charset', 'utf8mb4')}"
        )

    def connect(self):
        """建立数据库连接"""
        connection_string = self._connection_string()
        try:
            connect_args = {}
            if connection_string.startswith('mysql') and self.config.get('ssl_disabled', False):
                connect_args = {'ssl_disabled': True}
            self.engine = create_engine(connection_string, connect_args=connect_args)
            # 测试连接
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info(f"成功连接到数据库: {self.engine.url.render_as_string(hide_password=True)}")
        except SQLAlchemyError as e:
            logger.error(f"数据库连接失败: {e}")
            raise ConfigurationError(f"数据库连接失败: {e}", 'output repository') from e

    def disconnect(self):
        """关闭数据库连接"""
        if self.engine:
            self.engine.dispose()
            logger.info("数据库连接已关闭")

    def _require_engine(self):
        if self.engine is None:
            raise ConfigurationError("数据库尚未连接", 'output repository')

    def create_tables(self):
        """创建输出表"""
        self._require_engine()
        try:
            metadata.create_all(self.engine)
            logger.info("输出表创建成功")
        except SQLAlchemyError as e:
            logger.error(f"创建输出表失败: {e}")
            raise

    def _insert_batches(self, conn, table: Table, rows: List[Dict[str, Any]], desc: str):
        for i in tqdm(range(0, len(rows), self.batch_size), desc=desc, disable=len(rows) <= self.batch_size):
            conn.execute(table.insert(), rows[i:i + self.batch_size])

    @staticmethod
    def _correlation_row(correlation: Correlation, created_at: datetime) -> Dict[str, Any]:
        row = correlation.to_dict()
        for column in JSON_COLUMNS:
            row[column] = json.dumps(row[column], ensure_ascii=False)
        row['created_at'] = created_at
        return row

    def replace_correlations(self, correlations: List[Correlation],
                             start_date: Optional[date] = None, end_date: Optional[date] = None):
        """
        替换日期范围内的关联结果（删除+插入在同一事务内）

        Args:
            correlations: 新的关联结果
            start_date: 行程起始日期（含），None表示不限
            end_date: 行程截止日期（含），None表示不限
        """
        self._require_engine()
        outside = [c for c in correlations
                   if (start_date and c.trip_date < start_date) or (end_date and c.trip_date > end_date)]
        if outside:
            raise ValueError(f"{len(outside)} 条关联的行程日期不在替换范围内")

        created_at = datetime.now()
        rows = [self._correlation_row(correlation, created_at) for correlation in correlations]

        delete_stmt = correlations_table.delete()
        if start_date:
            delete_stmt = delete_stmt.where(correlations_table.c.trip_date >= start_date)
        if end_date:
            delete_stmt = delete_stmt.where(correlations_table.c.trip_date <= end_date)

        try:
            with self.engine.begin() as conn:  # 自动提交事务
                deleted = conn.execute(delete_stmt).rowcount
                if rows:
                    self._insert_batches(conn, correlations_table, rows, "保存关联")
            logger.info(f"关联结果已替换: 删除 {deleted} 条，写入 {len(rows)} 条 ({start_date} ~ {end_date})")
        except SQLAlchemyError as e:
            logger.error(f"保存关联结果失败: {e}")
            raise

    def save_discovered_pois(self, pois: List[DiscoveredPOI], clear_existing: bool = False):
        """
        保存POI（按ID覆盖）；clear_existing时先删除仍为discovered状态的历史POI

        Args:
            pois: POI列表
            clear_existing: 是否清除历史discovered POI
        """
        self._require_engine()
        rows = [poi.to_dict() for poi in pois]
        try:
            with self.engine.begin() as conn:
                if clear_existing:
                    conn.execute(pois_table.delete().where(
                        pois_table.c.classification_status == POIStatus.DISCOVERED.value))
                if rows:
                    conn.execute(pois_table.delete().where(pois_table.c.id.in_([row['id'] for row in rows])))
                    self._insert_batches(conn, pois_table, rows, "保存POI")
            logger.info(f"成功保存 {len(rows)} 个POI")
        except SQLAlchemyError as e:
            logger.error(f"保存POI失败: {e}")
            raise

    def replace_route_patterns(self, patterns: List[RoutePattern]):
        """全量替换路线模式"""
        self._require_engine()
        rows = [pattern.to_dict() for pattern in patterns]
        try:
            with self.engine.begin() as conn:
                deleted = conn.execute(routes_table.delete()).rowcount
                if rows:
                    self._insert_batches(conn, routes_table, rows, "保存路线")
            logger.info(f"路线模式已替换: 删除 {deleted} 条，写入 {len(rows)} 条")
        except SQLAlchemyError as e:
            logger.error(f"保存路线模式失败: {e}")
            raise

    def fetch_correlations(self, start_date: Optional[date] = None,
                           end_date: Optional[date] = None) -> pd.DataFrame:
        """读取关联结果"""
        self._require_engine()
        query = select(correlations_table)
        if start_date:
            query = query.where(correlations_table.c.trip_date >= start_date)
        if end_date:
            query = query.where(correlations_table.c.trip_date <= end_date)

        try:
            df = pd.read_sql(query, self.engine)
        except SQLAlchemyError as e:
            logger.error(f"读取关联结果失败: {e}")
            raise
        for column in JSON_COLUMNS:
            df[column] = df[column].map(lambda value: json.loads(value) if value else None)
        logger.info(f"从数据库读取了 {len(df)} 条关联结果")
        return df

    def fetch_discovered_pois(self, status: Optional[str] = None) -> pd.DataFrame:
        """读取POI"""
        self._require_engine()
        query = select(pois_table)
        if status:
            query = query.where(pois_table.c.classification_status == status)
        try:
            return pd.read_sql(query, self.engine)
        except SQLAlchemyError as e:
            logger.error(f"读取POI失败: {e}")
            raise

    def fetch_route_patterns(self) -> pd.DataFrame:
        """读取路线模式"""
        self._require_engine()
        try:
            return pd.read_sql(select(routes_table), self.engine)
        except SQLAlchemyError as e:
            logger.error(f"读取路线模式失败: {e}")
            raise

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:32
# @Author  : hejun
"""
文件处理工具函数
读取行程、码头、客户、交付记录、别名CSV数据源，输出结果文件
"""
import json
import math
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from shapely import wkt
from shapely.errors import ShapelyError

from core.exceptions import ConfigurationError, InputDefectError
from core.models import Trip, Terminal, Customer, DeliveryRecord, DiscoveredPOI, POIStatus, POIType
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('file_utils.py').get_logger()


def _clean(value: Any) -> Any:
    """把pandas的NaN/NaT统一为None"""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _to_float(value: Any) -> Optional[float]:
    value = _clean(value)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any, default: bool = True) -> bool:
    value = _clean(value)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'y', 't')
    return bool(value)


def parse_date(value: Any, formats: Optional[List[str]] = None) -> date:
    """
    解析日期，无法解析时抛出InputDefectError

    Args:
        value: 日期值（字符串/日期/时间戳）
        formats: 候选格式

    Returns:
        date
    """
    value = _clean(value)
    if value is None:
        raise InputDefectError("日期为空")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    for fmt in formats or ['%Y-%m-%d', '%d/%m/%Y', '%Y/%m/%d']:
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    raise InputDefectError(f"无法解析日期: {value!r}")


def parse_datetime(value: Any) -> datetime:
    """解析时间戳，无法解析时抛出InputDefectError"""
    value = _clean(value)
    if value is None:
        raise InputDefectError("时间为空")
    parsed = pd.to_datetime(value, errors='coerce')
    if pd.isna(parsed):
        raise InputDefectError(f"无法解析时间: {value!r}")
    return parsed.to_pydatetime()


class FileUtils:
    """文件处理工具类"""

    @staticmethod
    def ensure_directory(path: Union[str, Path]) -> Path:
        """确保目录存在"""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def write_json(data: Any, filepath: Union[str, Path],
                   indent: int = 2, encoding: str = 'utf-8'):
        """写入JSON文件"""
        with open(filepath, 'w', encoding=encoding) as f:
            json.dump(data, f, ensure_ascii=False, indent=indent, default=str)

    @staticmethod
    def read_csv_with_autodetect(filepath: Union[str, Path],
                                 **kwargs) -> pd.DataFrame:
        """自动检测编码读取CSV文件"""
        encodings = ['utf-8', 'utf-8-sig', 'latin1']

        for encoding in encodings:
            try:
                return pd.read_csv(filepath, encoding=encoding, **kwargs)
            except (UnicodeDecodeError, pd.errors.ParserError):
                continue

        raise ValueError(f"无法解码文件: {filepath}")

    @staticmethod
    def save_dataframe(df: pd.DataFrame, filepath: Union[str, Path],
                       index: bool = False, **kwargs):
        """保存DataFrame到文件，自动选择格式"""
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix == '.csv':
            df.to_csv(filepath, index=index, encoding='utf-8-sig', **kwargs)
        elif suffix == '.parquet':
            df.to_parquet(filepath, index=index, **kwargs)
        elif suffix == '.xlsx':
            df.to_excel(filepath, index=index, **kwargs)
        else:
            raise ValueError(f"不支持的文件格式: {suffix}")

    @staticmethod
    def _read_feed(filepath: Union[str, Path], collaborator: str, required: bool = True) -> List[Dict[str, Any]]:
        """读取数据源为字典列表；必需数据源缺失属于配置缺陷"""
        path = Path(filepath)
        if not path.exists():
            if required:
                raise ConfigurationError(f"数据文件不存在: {path}", collaborator)
            return []
        df = FileUtils.read_csv_with_autodetect(path, dtype=str, keep_default_na=True)
        return df.to_dict('records')

    @staticmethod
    def _load_rows(rows: List[Dict[str, Any]], builder, label: str) -> List[Any]:
        """逐行构建对象，坏行记录警告后跳过"""
        items, skipped = [], 0
        for index, row in enumerate(rows):
            try:
                items.append(builder(row))
            except InputDefectError as e:
                skipped += 1
                logger.warning(f"{label} 第 {index + 1} 行跳过: {e}")
        logger.info(f"{label}: 读取 {len(items)} 条，跳过 {skipped} 条")
        return items

    @staticmethod
    def load_trips(filepath: Union[str, Path]) -> List[Trip]:
        """读取行程数据"""

        def build(row):
            trip_id = _clean(row.get('id'))
            if trip_id is None:
                raise InputDefectError("行程缺少ID")
            end_time = _clean(row.get('end_time'))
            return Trip(
                id=str(trip_id),
                vehicle_registration=_clean(row.get('vehicle_registration')) or '',
                start_time=parse_datetime(row.get('start_time')),
                end_time=parse_datetime(end_time) if end_time else None,
                start_latitude=_to_float(row.get('start_latitude')),
                start_longitude=_to_float(row.get('start_longitude')),
                end_latitude=_to_float(row.get('end_latitude')),
                end_longitude=_to_float(row.get('end_longitude')),
                distance_km=_to_float(row.get('distance_km')) or 0.0,
                travel_time_hours=_to_float(row.get('travel_time_hours')) or 0.0,
                idle_time_hours=_to_float(row.get('idle_time_hours')) or 0.0,
                start_location=_clean(row.get('start_location')),
                end_location=_clean(row.get('end_location')),
                driver_name=_clean(row.get('driver_name')),
            )

        return FileUtils._load_rows(FileUtils._read_feed(filepath, 'trip feed'), build, '行程')

    @staticmethod
    def load_terminals(filepath: Union[str, Path]) -> List[Terminal]:
        """读取码头数据，service_area 列可为WKT多边形"""

        def build(row):
            latitude = _to_float(row.get('latitude'))
            longitude = _to_float(row.get('longitude'))
            if latitude is None or longitude is None or not _clean(row.get('name')):
                raise InputDefectError("码头缺少名称或坐标")
            service_area = None
            area_text = _clean(row.get('service_area'))
            if area_text:
                try:
                    service_area = wkt.loads(area_text)
                except ShapelyError as e:
                    raise InputDefectError(f"服务区WKT无效: {e}")
            return Terminal(
                id=str(_clean(row.get('id')) or row['name']),
                name=row['name'].strip(),
                latitude=latitude,
                longitude=longitude,
                service_radius_km=_to_float(row.get('service_radius_km')) or 10.0,
                service_area=service_area,
                carrier_primary=_clean(row.get('carrier_primary')),
                active=_to_bool(row.get('active'), True),
            )

        return FileUtils._load_rows(FileUtils._read_feed(filepath, 'terminal registry'), build, '码头')

    @staticmethod
    def load_customers(filepath: Union[str, Path]) -> List[Customer]:
        """读取客户数据（可选）"""

        def build(row):
            name = _clean(row.get('name'))
            if not name:
                raise InputDefectError("客户缺少名称")
            return Customer(
                id=str(_clean(row.get('id')) or name),
                name=name.strip(),
                latitude=_to_float(row.get('latitude')),
                longitude=_to_float(row.get('longitude')),
                service_radius_km=_to_float(row.get('service_radius_km')),
            )

        return FileUtils._load_rows(FileUtils._read_feed(filepath, 'customer registry', required=False),
                                    build, '客户')

    @staticmethod
    def load_deliveries(filepath: Union[str, Path], date_formats: Optional[List[str]] = None) -> List[DeliveryRecord]:
        """读取交付记录"""

        def build(row):
            delivery_id = _clean(row.get('id'))
            customer = _clean(row.get('customer'))
            if delivery_id is None or customer is None:
                raise InputDefectError("交付记录缺少ID或客户")
            return DeliveryRecord(
                id=str(delivery_id),
                customer=customer,
                terminal=_clean(row.get('terminal')),
                delivery_date=parse_date(row.get('delivery_date'), date_formats),
                volume_litres=_to_float(row.get('volume_litres')) or 0.0,
                carrier=_clean(row.get('carrier')),
                bill_of_lading=_clean(row.get('bill_of_lading')),
            )

        return FileUtils._load_rows(FileUtils._read_feed(filepath, 'delivery-record feed'), build, '交付记录')

    @staticmethod
    def load_aliases(filepath: Union[str, Path]) -> Optional[List[Dict[str, Any]]]:
        """读取别名表（可选），文件不存在返回None"""
        if not Path(filepath).exists():
            return None
        rows = []
        for row in FileUtils._read_feed(filepath, 'alias table', required=False):
            boost = _to_float(row.get('confidence_boost'))
            rows.append({
                'alias_name': _clean(row.get('alias_name')),
                'canonical_name': _clean(row.get('canonical_name')),
                'confidence_boost': int(boost) if boost is not None else None,
            })
        return rows

    @staticmethod
    def load_pois(filepath: Union[str, Path]) -> List[DiscoveredPOI]:
        """读取已有POI（含分类结果，可选）"""

        def build(row):
            latitude = _to_float(row.get('centroid_latitude'))
            longitude = _to_float(row.get('centroid_longitude'))
            if latitude is None or longitude is None or not _clean(row.get('id')):
                raise InputDefectError("POI缺少ID或坐标")
            try:
                status = POIStatus(_clean(row.get('classification_status')) or 'discovered')
                poi_type = POIType(_clean(row.get('poi_type')) or 'unknown')
            except ValueError as e:
                raise InputDefectError(str(e))
            return DiscoveredPOI(
                id=str(row['id']),
                centroid_latitude=latitude,
                centroid_longitude=longitude,
                trip_count=int(_to_float(row.get('trip_count')) or 0),
                start_point_count=int(_to_float(row.get('start_point_count')) or 0),
                end_point_count=int(_to_float(row.get('end_point_count')) or 0),
                avg_idle_time_hours=_to_float(row.get('avg_idle_time_hours')) or 0.0,
                total_idle_time_hours=_to_float(row.get('total_idle_time_hours')) or 0.0,
                gps_accuracy_meters=_to_float(row.get('gps_accuracy_meters')) or 0.0,
                confidence_score=int(_to_float(row.get('confidence_score')) or 0),
                classification_status=status,
                poi_type=poi_type,
                suggested_name=_clean(row.get('suggested_name')),
                service_radius_km=_to_float(row.get('service_radius_km')) or 1.0,
                actual_name=_clean(row.get('actual_name')),
                matched_terminal_id=_clean(row.get('matched_terminal_id')),
                matched_customer_id=_clean(row.get('matched_customer_id')),
                merged_into_id=_clean(row.get('merged_into_id')),
            )

        return FileUtils._load_rows(FileUtils._read_feed(filepath, 'poi registry', required=False),
                                    build, 'POI')

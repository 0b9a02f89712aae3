#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/9 16:20
# @Author  : hejun
"""
路线模式聚合模块
按（起点POI, 终点POI）分组统计行程，全量重算
"""
import hashlib
import uuid
from typing import Dict, List, Any, Optional

import numpy as np
import pandas as pd
from geopy.distance import geodesic

from core.models import Trip, RoutePattern, DiscoveredPOI, POIType
from core.poi_registry import PoiRegistry
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('route_patterns.py').get_logger()

ROUTE_TYPES = {
    (POIType.TERMINAL, POIType.CUSTOMER): 'delivery',
    (POIType.CUSTOMER, POIType.TERMINAL): 'return',
    (POIType.TERMINAL, POIType.TERMINAL): 'transfer',
    (POIType.CUSTOMER, POIType.CUSTOMER): 'customer_to_customer',
}


def classify_route_type(start_type: POIType, end_type: POIType) -> str:
    """根据两端POI类型判定路线类型"""
    if start_type == POIType.DEPOT:
        return 'positioning'
    return ROUTE_TYPES.get((start_type, end_type), 'unknown')


def route_hash(start_poi_id: str, end_poi_id: str) -> str:
    return hashlib.md5(f"{start_poi_id}|{end_poi_id}".encode('utf-8')).hexdigest()


class RoutePatternAggregator:
    """路线模式聚合器"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}

        self.route_config = self.config.get('route_patterns', {
            'min_trip_count': 10,
            'poi_min_confidence': 70,
            'efficiency_bands': [(0.15, 95), (0.25, 85), (0.35, 75)],
            'efficiency_default': 65,
            'quality_tiers': [
                ('platinum', 90, 30, 50),
                ('gold', 80, 50, 20),
                ('silver', 70, 100, 10),
            ],
        })

    def efficiency_rating(self, variability: Optional[float], average_time: float) -> int:
        """按旅行时间变异系数分档"""
        if variability is None or pd.isna(variability) or not average_time:
            return self.route_config['efficiency_default']
        coefficient = variability / average_time
        for upper, rating in self.route_config['efficiency_bands']:
            if coefficient < upper:
                return rating
        return self.route_config['efficiency_default']

    def quality_tier(self, start_poi: DiscoveredPOI, end_poi: DiscoveredPOI, trip_count: int) -> str:
        """综合两端POI置信度、GPS精度与行程数的数据质量等级"""
        for tier, min_confidence, max_accuracy, min_trips in self.route_config['quality_tiers']:
            if start_poi.confidence_score >= min_confidence and end_poi.confidence_score >= min_confidence \
                    and start_poi.gps_accuracy_meters < max_accuracy and end_poi.gps_accuracy_meters < max_accuracy \
                    and trip_count >= min_trips:
                return tier
        return 'bronze'

    def match_trips_to_pois(self, trips: List[Trip], registry: PoiRegistry,
                            poi_min_confidence: int) -> pd.DataFrame:
        """
        将行程起终点匹配到最近的已分类POI

        Returns:
            起终点均命中且POI不同的行程DataFrame
        """
        candidates = registry.classified_pois(poi_min_confidence)
        rows = []
        for trip in trips:
            if not (trip.has_start_point and trip.has_end_point):
                continue
            if not trip.distance_km or trip.distance_km <= 0 or not trip.travel_time_hours or trip.travel_time_hours <= 0:
                continue
            start_poi = registry.nearest_classified_poi(trip.start_latitude, trip.start_longitude,
                                                        candidates=candidates)
            if start_poi is None:
                continue
            end_poi = registry.nearest_classified_poi(trip.end_latitude, trip.end_longitude,
                                                      candidates=candidates)
            if end_poi is None or end_poi.id == start_poi.id:
                continue
            rows.append({
                'trip_id': trip.id,
                'start_poi_id': start_poi.id,
                'end_poi_id': end_poi.id,
                'distance_km': float(trip.distance_km),
                'travel_time_hours': float(trip.travel_time_hours),
                'vehicle_registration': trip.vehicle_registration,
                'driver_name': trip.driver_name,
                'trip_date': trip.trip_date,
            })
        return pd.DataFrame(rows, columns=['trip_id', 'start_poi_id', 'end_poi_id', 'distance_km',
                                           'travel_time_hours', 'vehicle_registration', 'driver_name',
                                           'trip_date'])

    @staticmethod
    def _mode(series: pd.Series) -> Optional[str]:
        modes = series.dropna().mode()
        return None if modes.empty else modes.iloc[0]

    def aggregate(self, trips: List[Trip], registry: PoiRegistry,
                  min_trip_count: int = None, poi_min_confidence: int = None) -> List[RoutePattern]:
        """
        计算路线模式

        Args:
            trips: 行程
            registry: POI注册表（只读取classified状态）
            min_trip_count: 最少行程数
            poi_min_confidence: POI最低置信度

        Returns:
            路线模式列表，按行程数降序
        """
        min_trip_count = self.route_config['min_trip_count'] if min_trip_count is None else min_trip_count
        poi_min_confidence = self.route_config['poi_min_confidence'] if poi_min_confidence is None \
            else poi_min_confidence

        matched = self.match_trips_to_pois(trips, registry, poi_min_confidence)
        logger.info(f"路线聚合: 行程 {len(trips)}，命中POI对 {len(matched)}，最少行程数 {min_trip_count}")
        if matched.empty:
            return []

        patterns = []
        for (start_id, end_id), group in matched.groupby(['start_poi_id', 'end_poi_id'], sort=True):
            if len(group) < min_trip_count:
                continue
            patterns.append(self._build_pattern(registry.get(start_id), registry.get(end_id), group))

        pairs = {(pattern.start_poi_id, pattern.end_poi_id) for pattern in patterns}
        for pattern in patterns:
            pattern.has_return_route = (pattern.end_poi_id, pattern.start_poi_id) in pairs

        patterns.sort(key=lambda pattern: (-pattern.trip_count, pattern.route_hash))
        logger.info(f"路线聚合完成: {len(patterns)} 条路线")
        return patterns

    def _build_pattern(self, start_poi: DiscoveredPOI, end_poi: DiscoveredPOI,
                       group: pd.DataFrame) -> RoutePattern:
        distances = group['distance_km']
        times = group['travel_time_hours']
        average_distance = float(distances.mean())
        average_time = float(times.mean())
        variability = float(times.std(ddof=1)) if len(group) > 1 else None

        straight_line = geodesic((start_poi.centroid_latitude, start_poi.centroid_longitude),
                                 (end_poi.centroid_latitude, end_poi.centroid_longitude)).km
        deviation = average_distance / straight_line * 100 if straight_line > 0 else None

        return RoutePattern(
            id=str(uuid.uuid4()),
            route_hash=route_hash(start_poi.id, end_poi.id),
            start_poi_id=start_poi.id,
            end_poi_id=end_poi.id,
            start_location=start_poi.display_name,
            end_location=end_poi.display_name,
            route_type=classify_route_type(start_poi.poi_type, end_poi.poi_type),
            data_quality_tier=self.quality_tier(start_poi, end_poi, len(group)),
            trip_count=len(group),
            average_distance_km=round(average_distance, 2),
            min_distance_km=float(distances.min()),
            max_distance_km=float(distances.max()),
            average_travel_time_hours=round(average_time, 2),
            best_time_hours=float(times.min()),
            worst_time_hours=float(times.max()),
            time_variability=None if variability is None else round(variability, 2),
            efficiency_rating=self.efficiency_rating(variability, average_time),
            most_common_vehicle=self._mode(group['vehicle_registration']),
            most_common_driver=self._mode(group['driver_name']),
            first_trip_date=min(group['trip_date']),
            last_trip_date=max(group['trip_date']),
            straight_line_distance_km=round(straight_line, 2),
            route_deviation_ratio=None if deviation is None else round(deviation, 2),
            avg_gps_accuracy_meters=round(float(np.mean([start_poi.gps_accuracy_meters,
                                                         end_poi.gps_accuracy_meters])), 2),
            avg_loading_time_hours=start_poi.avg_idle_time_hours,
            avg_delivery_time_hours=end_poi.avg_idle_time_hours,
            start_poi_confidence=start_poi.confidence_score,
            end_poi_confidence=end_poi.confidence_score,
        )

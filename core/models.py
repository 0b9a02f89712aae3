#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/8 10:15
# @Author  : hejun
"""
数据模型
行程、POI、码头、客户、交付记录、关联结果与路线模式
"""
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Any, Optional

from shapely.geometry import Polygon


class POIStatus(str, Enum):
    """POI分类状态"""
    DISCOVERED = 'discovered'
    CLASSIFIED = 'classified'
    MERGED = 'merged'


class POIType(str, Enum):
    """POI类型"""
    TERMINAL = 'terminal'
    CUSTOMER = 'customer'
    DEPOT = 'depot'
    UNKNOWN = 'unknown'


class MatchQuality(str, Enum):
    """关联质量标签"""
    EXCELLENT = 'excellent'
    GOOD = 'good'
    FAIR = 'fair'
    POOR = 'poor'


def _has_coordinates(lat: Optional[float], lon: Optional[float]) -> bool:
    return lat is not None and lon is not None


@dataclass
class Trip:
    """一次车辆行程（遥测数据）"""
    id: str
    vehicle_registration: str
    start_time: datetime
    end_time: Optional[datetime] = None
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    distance_km: float = 0.0
    travel_time_hours: float = 0.0
    idle_time_hours: float = 0.0
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    driver_name: Optional[str] = None

    @property
    def trip_date(self) -> date:
        return self.start_time.date()

    @property
    def has_start_point(self) -> bool:
        return _has_coordinates(self.start_latitude, self.start_longitude)

    @property
    def has_end_point(self) -> bool:
        return _has_coordinates(self.end_latitude, self.end_longitude)


@dataclass
class DiscoveredPOI:
    """由行程起终点聚类得到的兴趣点"""
    id: str
    centroid_latitude: float
    centroid_longitude: float
    trip_count: int
    start_point_count: int = 0
    end_point_count: int = 0
    avg_idle_time_hours: float = 0.0
    total_idle_time_hours: float = 0.0
    gps_accuracy_meters: float = 0.0
    confidence_score: int = 0
    classification_status: POIStatus = POIStatus.DISCOVERED
    poi_type: POIType = POIType.UNKNOWN
    suggested_name: Optional[str] = None
    service_radius_km: float = 1.0
    actual_name: Optional[str] = None
    matched_terminal_id: Optional[str] = None
    matched_customer_id: Optional[str] = None
    merged_into_id: Optional[str] = None
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    cluster_id: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.actual_name or self.suggested_name or self.id

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['classification_status'] = self.classification_status.value
        data['poi_type'] = self.poi_type.value
        return data


@dataclass
class Terminal:
    """已知码头（参考数据）"""
    id: str
    name: str
    latitude: float
    longitude: float
    service_radius_km: float = 10.0
    service_area: Optional[Polygon] = None  # (lon, lat) 坐标顺序
    carrier_primary: Optional[str] = None
    active: bool = True


@dataclass
class Customer:
    """已知客户（参考数据）"""
    id: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    service_radius_km: Optional[float] = None


@dataclass
class DeliveryRecord:
    """一条交付记录（账单侧）"""
    id: str
    customer: str
    terminal: Optional[str]
    delivery_date: Optional[date]
    volume_litres: float = 0.0
    carrier: Optional[str] = None
    bill_of_lading: Optional[str] = None


@dataclass
class Correlation:
    """行程与交付记录之间的一条打分关联"""
    id: str
    trip_id: str
    delivery_id: str
    trip_date: date
    delivery_date: date
    customer_name: str
    terminal_name: Optional[str]
    overall_confidence: int
    confidence_breakdown: Dict[str, Any]
    match_methods: List[str]
    match_quality: MatchQuality
    text_confidence: int = 0
    text_match_method: Optional[str] = None
    business_identifier_match: bool = False
    location_reference_match: bool = False
    geo_confidence: int = 0
    terminal_distance_km: Optional[float] = None
    within_service_area: bool = False
    matching_trip_point: Optional[str] = None
    temporal_confidence: int = 0
    date_difference_days: int = 0
    quality_flags: List[str] = field(default_factory=list)
    requires_manual_review: bool = False
    delivery_volume_litres: float = 0.0

    def recompute_confidence(self, settings=None) -> int:
        """
        仅根据存储的分项置信度重新计算总置信度（审计用）

        融合参数优先取 confidence_breakdown 中随结果存下的值，缺失的项才用 settings（默认参数）补齐
        """
        from core.correlation_engine import fuse_confidence, CorrelationSettings, FUSION_PARAMETERS

        breakdown = self.confidence_breakdown
        stored = {name: breakdown[name] for name in FUSION_PARAMETERS if name in breakdown}
        settings = replace(settings or CorrelationSettings(), **stored)
        score, _ = fuse_confidence(breakdown['text_confidence'], breakdown['geo_confidence'],
                                   breakdown['temporal_confidence'], settings)
        return score

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['match_quality'] = self.match_quality.value
        return data


@dataclass
class RoutePattern:
    """两个已分类POI之间的有向路线统计"""
    id: str
    route_hash: str
    start_poi_id: str
    end_poi_id: str
    start_location: str
    end_location: str
    route_type: str
    data_quality_tier: str
    trip_count: int
    average_distance_km: float
    min_distance_km: float
    max_distance_km: float
    average_travel_time_hours: float
    best_time_hours: float
    worst_time_hours: float
    time_variability: Optional[float]
    efficiency_rating: int
    most_common_vehicle: Optional[str]
    most_common_driver: Optional[str]
    first_trip_date: date
    last_trip_date: date
    straight_line_distance_km: float
    route_deviation_ratio: Optional[float]
    avg_gps_accuracy_meters: float
    avg_loading_time_hours: float
    avg_delivery_time_hours: float
    start_poi_confidence: int
    end_poi_confidence: int
    has_return_route: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

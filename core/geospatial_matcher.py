#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/8 15:30
# @Author  : hejun
"""
空间匹配模块
根据坐标为行程起终点查找候选码头/客户，按距离分档打分
"""
from dataclasses import dataclass
from typing import Dict, List, Any, Optional, Union

from geopy.distance import geodesic
from shapely.geometry import Point

from core.exceptions import ConfigurationError
from core.models import Terminal, Customer, Trip
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('geospatial_matcher.py').get_logger()


@dataclass
class TerminalMatch:
    """码头/客户候选"""
    reference: Union[Terminal, Customer]
    distance_km: float
    within_service_area: bool
    confidence_score: int
    trip_point: Optional[str] = None

    @property
    def name(self) -> str:
        return self.reference.name


class ReferenceRegistry:
    """参考数据注册表：码头与客户"""

    def __init__(self, terminals: List[Terminal], customers: Optional[List[Customer]] = None):
        if not terminals:
            raise ConfigurationError("码头注册表为空或不可用", 'terminal registry')
        self.terminals = list(terminals)
        self.customers = list(customers or [])
        self._terminals_by_name = {terminal.name.strip().upper(): terminal for terminal in self.terminals}

    def active_terminals(self, carrier_filter: Optional[str] = None,
                         combined_label: str = 'Combined') -> List[Terminal]:
        """获取可用码头，承运商过滤时同时保留'Combined'码头"""
        result = []
        for terminal in self.terminals:
            if not terminal.active:
                continue
            if carrier_filter and terminal.carrier_primary not in (carrier_filter, combined_label):
                continue
            result.append(terminal)
        return result

    def terminal_by_name(self, name: Optional[str]) -> Optional[Terminal]:
        if not name:
            return None
        return self._terminals_by_name.get(name.strip().upper())


class GeospatialMatcher:
    """空间匹配器"""

    def __init__(self, registry: ReferenceRegistry, config: Dict[str, Any] = None):
        self.registry = registry
        self.config = config or {}

        self.geo_config = self.config.get('geospatial', {
            'max_distance_km': 100,
            'service_area_confidence': 95,
            'distance_bands': [(25, 85), (50, 70), (100, 50)],
            'outside_bands_confidence': 25,
            'combined_carrier': 'Combined',
        })

    def distance_confidence(self, distance_km: float, within_service_area: bool) -> int:
        """
        距离分档置信度

        Args:
            distance_km: 距离（公里）
            within_service_area: 是否在服务区内

        Returns:
            置信度
        """
        if within_service_area:
            return self.geo_config['service_area_confidence']
        for upper_km, confidence in self.geo_config['distance_bands']:
            if distance_km <= upper_km:
                return confidence
        return self.geo_config['outside_bands_confidence']

    @staticmethod
    def _within_service_area(latitude: float, longitude: float,
                             reference: Union[Terminal, Customer], distance_km: float) -> bool:
        service_area = getattr(reference, 'service_area', None)
        if service_area is not None:
            return service_area.covers(Point(longitude, latitude))
        radius = reference.service_radius_km
        return radius is not None and distance_km <= radius

    def _rank(self, latitude: float, longitude: float,
              references: List[Union[Terminal, Customer]],
              max_distance_km: float) -> List[TerminalMatch]:
        matches = []
        for reference in references:
            if reference.latitude is None or reference.longitude is None:
                continue
            distance_km = geodesic((latitude, longitude), (reference.latitude, reference.longitude)).km
            if distance_km > max_distance_km:
                continue
            within = self._within_service_area(latitude, longitude, reference, distance_km)
            matches.append(TerminalMatch(reference, distance_km, within,
                                         self.distance_confidence(distance_km, within)))
        matches.sort(key=lambda match: (match.distance_km, match.reference.id))
        return matches

    def find_terminals_for_point(self, latitude: Optional[float], longitude: Optional[float],
                                 max_distance_km: float = None,
                                 carrier_filter: Optional[str] = None) -> List[TerminalMatch]:
        """
        查找点附近的码头

        Args:
            latitude: 纬度
            longitude: 经度
            max_distance_km: 最大搜索距离
            carrier_filter: 承运商过滤

        Returns:
            按距离升序的候选列表；坐标缺失返回空列表
        """
        if latitude is None or longitude is None:
            return []
        if max_distance_km is None:
            max_distance_km = self.geo_config['max_distance_km']
        if max_distance_km < 0:
            raise ConfigurationError(f"最大距离不能为负: {max_distance_km}", 'max_distance_km')

        terminals = self.registry.active_terminals(carrier_filter, self.geo_config['combined_carrier'])
        return self._rank(latitude, longitude, terminals, max_distance_km)

    def find_customers_for_point(self, latitude: Optional[float], longitude: Optional[float],
                                 max_distance_km: float = None) -> List[TerminalMatch]:
        """查找点附近的客户，打分规则与码头一致"""
        if latitude is None or longitude is None:
            return []
        if max_distance_km is None:
            max_distance_km = self.geo_config['max_distance_km']
        return self._rank(latitude, longitude, self.registry.customers, max_distance_km)

    def correlate_trip_with_terminals(self, trip: Trip, max_distance_km: float = None,
                                      require_both_points: bool = False) -> List[TerminalMatch]:
        """
        行程起终点与码头的空间关联

        Args:
            trip: 行程
            max_distance_km: 最大搜索距离
            require_both_points: 是否要求起终点坐标齐全

        Returns:
            起点和终点的候选，标注trip_point
        """
        if require_both_points and not (trip.has_start_point and trip.has_end_point):
            return []

        matches = []
        for trip_point, latitude, longitude in (('start', trip.start_latitude, trip.start_longitude),
                                                ('end', trip.end_latitude, trip.end_longitude)):
            for match in self.find_terminals_for_point(latitude, longitude, max_distance_km):
                match.trip_point = trip_point
                matches.append(match)
        return matches

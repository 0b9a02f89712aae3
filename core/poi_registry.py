#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/8 14:05
# @Author  : hejun
"""
POI注册表
集中管理POI分类状态迁移：discovered -> classified | merged，classified可重新分类
"""
from collections import Counter
from typing import Dict, List, Any, Optional

from geopy.distance import geodesic

from core.exceptions import InvalidTransitionError
from core.models import DiscoveredPOI, POIStatus, POIType
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('poi_registry.py').get_logger()

# 允许的状态迁移
ALLOWED_TRANSITIONS = {
    POIStatus.DISCOVERED: {POIStatus.CLASSIFIED, POIStatus.MERGED},
    POIStatus.CLASSIFIED: {POIStatus.CLASSIFIED},
    POIStatus.MERGED: set(),
}


class PoiRegistry:
    """POI注册表（POI只迁移状态，从不删除）"""

    def __init__(self, pois: Optional[List[DiscoveredPOI]] = None):
        self._pois: Dict[str, DiscoveredPOI] = {}
        for poi in pois or []:
            self._pois[poi.id] = poi

    def __len__(self):
        return len(self._pois)

    def __iter__(self):
        return iter(self._pois.values())

    def get(self, poi_id: str) -> DiscoveredPOI:
        if poi_id not in self._pois:
            raise KeyError(f"未知POI: {poi_id}")
        return self._pois[poi_id]

    def add(self, poi: DiscoveredPOI):
        self._pois[poi.id] = poi

    def _transition(self, poi: DiscoveredPOI, target: POIStatus):
        if target not in ALLOWED_TRANSITIONS[poi.classification_status]:
            raise InvalidTransitionError(poi.id, poi.classification_status.value, target.value)
        poi.classification_status = target

    def classify(self, poi_id: str, poi_type: POIType,
                 actual_name: Optional[str] = None,
                 service_radius_km: Optional[float] = None,
                 matched_terminal_id: Optional[str] = None,
                 matched_customer_id: Optional[str] = None) -> DiscoveredPOI:
        """
        分类POI（discovered -> classified，或重新分类）

        Args:
            poi_id: POI ID
            poi_type: POI类型
            actual_name: 实际名称
            service_radius_km: 服务半径
            matched_terminal_id: 关联码头ID
            matched_customer_id: 关联客户ID

        Returns:
            更新后的POI
        """
        poi = self.get(poi_id)
        self._transition(poi, POIStatus.CLASSIFIED)
        poi.poi_type = POIType(poi_type)
        if actual_name is not None:
            poi.actual_name = actual_name
        if service_radius_km is not None:
            if service_radius_km <= 0:
                raise ValueError(f"服务半径必须为正数: {service_radius_km}")
            poi.service_radius_km = service_radius_km
        if matched_terminal_id is not None:
            poi.matched_terminal_id = matched_terminal_id
        if matched_customer_id is not None:
            poi.matched_customer_id = matched_customer_id
        logger.info(f"POI {poi_id} 分类为 {poi.poi_type.value}: {poi.display_name}")
        return poi

    def merge(self, absorbed_id: str, into_id: str) -> DiscoveredPOI:
        """
        将一个discovered POI并入另一个POI

        Returns:
            吸收方POI
        """
        if absorbed_id == into_id:
            raise ValueError("POI不能并入自身")
        absorbed = self.get(absorbed_id)
        survivor = self.get(into_id)
        if survivor.classification_status == POIStatus.MERGED:
            raise InvalidTransitionError(into_id, survivor.classification_status.value, 'absorb')

        self._transition(absorbed, POIStatus.MERGED)
        absorbed.merged_into_id = survivor.id
        survivor.trip_count += absorbed.trip_count
        survivor.start_point_count += absorbed.start_point_count
        survivor.end_point_count += absorbed.end_point_count
        survivor.total_idle_time_hours += absorbed.total_idle_time_hours
        if survivor.trip_count:
            survivor.avg_idle_time_hours = survivor.total_idle_time_hours / survivor.trip_count
        logger.info(f"POI {absorbed_id} 并入 {into_id}")
        return survivor

    def classified_pois(self, min_confidence: int = 70) -> List[DiscoveredPOI]:
        """获取置信度达标的已分类POI"""
        return [poi for poi in self._pois.values()
                if poi.classification_status == POIStatus.CLASSIFIED
                and poi.confidence_score >= min_confidence]

    def nearest_classified_poi(self, latitude: Optional[float], longitude: Optional[float],
                               min_confidence: int = 70,
                               candidates: Optional[List[DiscoveredPOI]] = None) -> Optional[DiscoveredPOI]:
        """
        查找包含该点的最近已分类POI（点需落在POI服务半径内）

        Args:
            latitude: 纬度
            longitude: 经度
            min_confidence: POI最低置信度
            candidates: 预先筛选的候选POI

        Returns:
            POI，未命中返回None
        """
        if latitude is None or longitude is None:
            return None

        best, best_distance = None, None
        for poi in candidates if candidates is not None else self.classified_pois(min_confidence):
            distance_km = geodesic((latitude, longitude),
                                   (poi.centroid_latitude, poi.centroid_longitude)).km
            if distance_km > poi.service_radius_km:
                continue
            if best_distance is None or distance_km < best_distance:
                best, best_distance = poi, distance_km
        return best

    def statistics(self) -> Dict[str, Any]:
        """POI统计：按状态、类型计数与平均置信度"""
        pois = list(self._pois.values())
        by_status = Counter(poi.classification_status.value for poi in pois)
        by_type = Counter(poi.poi_type.value for poi in pois)
        avg_confidence = sum(poi.confidence_score for poi in pois) / len(pois) if pois else 0.0
        return {
            'total': len(pois),
            'by_status': dict(by_status),
            'by_type': dict(by_type),
            'average_confidence': round(avg_confidence, 2),
        }

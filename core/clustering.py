#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:15
# @Author  : hejun
"""
POI发现（行程起终点聚类）模块
"""
import math
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple

import numpy as np
import pandas as pd
from geopy.distance import geodesic
from scipy.sparse import lil_matrix
from scipy.sparse.csgraph import connected_components
from sklearn.cluster import DBSCAN

from core.exceptions import ConfigurationError
from core.models import Trip, DiscoveredPOI, POIStatus
from utils.logger import setup_logging
from utils.parallel_processor import ParallelProcessor

# 初始化日志记录器
logger = setup_logging('clustering.py').get_logger()

EARTH_RADIUS_METERS = 6371008.8
METERS_PER_DEGREE = 111000

ROLE_START = 'start'
ROLE_END = 'end'


def spherical_centroid(latitudes: np.ndarray, longitudes: np.ndarray) -> Tuple[float, float]:
    """
    球面质心：单位向量求均值后投影回经纬度

    Args:
        latitudes: 纬度数组（度）
        longitudes: 经度数组（度）

    Returns:
        (纬度, 经度)
    """
    lat_rad = np.radians(latitudes)
    lon_rad = np.radians(longitudes)
    x = np.mean(np.cos(lat_rad) * np.cos(lon_rad))
    y = np.mean(np.cos(lat_rad) * np.sin(lon_rad))
    z = np.mean(np.sin(lat_rad))

    centroid_lon = math.atan2(y, x)
    centroid_lat = math.atan2(z, math.hypot(x, y))
    return math.degrees(centroid_lat), math.degrees(centroid_lon)


def gps_accuracy_meters(latitudes: np.ndarray, longitudes: np.ndarray) -> float:
    """以米计的坐标离散度（纬向/经向样本标准差取大者），单点聚类为0"""
    if len(latitudes) < 2:
        return 0.0
    lat_std_m = float(np.std(latitudes, ddof=1)) * METERS_PER_DEGREE
    lon_std_m = float(np.std(longitudes, ddof=1)) * METERS_PER_DEGREE * \
        math.cos(math.radians(float(np.mean(latitudes))))
    return max(lat_std_m, lon_std_m)


def poi_confidence(trip_count: int, accuracy_meters: float) -> int:
    """
    POI置信度：行程越多、离散度越小越高

    Args:
        trip_count: 聚类内行程数
        accuracy_meters: 坐标离散度（米）

    Returns:
        置信度 [0, 100]
    """
    score = 50
    if trip_count > 100:
        score += 30
    elif trip_count > 50:
        score += 20
    elif trip_count > 20:
        score += 10

    if accuracy_meters < 50:
        score += 20
    elif accuracy_meters < 100:
        score += 10

    return int(min(100, max(0, score)))


@dataclass
class DiscoveryResult:
    """POI发现结果汇总"""
    pois: List[DiscoveredPOI]  # 保留的历史POI + 本次新POI（含merged状态）
    new_pois: List[DiscoveredPOI]
    start_poi_count: int
    end_poi_count: int
    merged_count: int
    total_trips_analyzed: int
    message: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def active_pois(self) -> List[DiscoveredPOI]:
        """本次发现且未被合并的POI"""
        return [poi for poi in self.new_pois if poi.classification_status == POIStatus.DISCOVERED]

    @property
    def poi_count(self) -> int:
        return len(self.active_pois)

    def to_summary(self) -> Dict[str, Any]:
        return {
            'poi_count': self.poi_count,
            'start_poi_count': self.start_poi_count,
            'end_poi_count': self.end_poi_count,
            'merged_count': self.merged_count,
            'total_trips_analyzed': self.total_trips_analyzed,
            'message': self.message,
        }


class PoiDiscovery:
    """POI发现器"""

    def __init__(self, config: Dict[str, Any] = None,
                 processor: Optional[ParallelProcessor] = None):
        self.config = config or {}

        # 聚类参数
        self.poi_config = self.config.get('poi_discovery', {
            'epsilon_meters': 500,
            'min_points': 10,
            'min_idle_minutes': 30,
            'clear_existing': False,
            'default_service_radius_km': 1.0,
            'end_cluster_offset': 10000,
        })
        self.processor = processor or ParallelProcessor(n_jobs=2)

    @staticmethod
    def validate_parameters(epsilon_meters: float, min_points: int, min_idle_minutes: float):
        """参数校验，非法参数属于致命配置缺陷"""
        if epsilon_meters is None or epsilon_meters <= 0:
            raise ConfigurationError(f"邻域半径必须为正数: {epsilon_meters}", 'epsilon_meters')
        if min_points is None or int(min_points) < 1:
            raise ConfigurationError(f"最小点数至少为1: {min_points}", 'min_points')
        if min_idle_minutes is None or min_idle_minutes < 0:
            raise ConfigurationError(f"最小怠速时长不能为负: {min_idle_minutes}", 'min_idle_minutes')

    def discover(self, trips: List[Trip],
                 epsilon_meters: float = None,
                 min_points: int = None,
                 min_idle_minutes: float = None,
                 clear_existing: bool = None,
                 existing_pois: Optional[List[DiscoveredPOI]] = None) -> DiscoveryResult:
        """
        从行程起终点发现POI

        Args:
            trips: 行程列表
            epsilon_meters: 邻域半径（米）
            min_points: 最小点数（含自身）
            min_idle_minutes: 参与聚类的最小怠速时长（分钟）
            clear_existing: 是否清除仍处于discovered状态的历史POI
            existing_pois: 历史POI

        Returns:
            DiscoveryResult
        """
        epsilon_meters = self.poi_config['epsilon_meters'] if epsilon_meters is None else epsilon_meters
        min_points = self.poi_config['min_points'] if min_points is None else min_points
        min_idle_minutes = self.poi_config['min_idle_minutes'] if min_idle_minutes is None else min_idle_minutes
        clear_existing = self.poi_config['clear_existing'] if clear_existing is None else clear_existing
        self.validate_parameters(epsilon_meters, min_points, min_idle_minutes)
        min_points = int(min_points)

        logger.info(f"开始POI发现: 行程 {len(trips)}，半径 {epsilon_meters}m，"
                    f"最小点数 {min_points}，最小怠速 {min_idle_minutes}分钟")

        min_idle_hours = min_idle_minutes / 60.0
        start_points = self._collect_points(trips, ROLE_START, min_idle_hours)
        end_points = self._collect_points(trips, ROLE_END, min_idle_hours)

        # 起点和终点两次聚类互不依赖，并行执行
        start_clusters, end_clusters = self.processor.run_independent([
            lambda: self._cluster_role(start_points, ROLE_START, epsilon_meters, min_points),
            lambda: self._cluster_role(end_points, ROLE_END, epsilon_meters, min_points),
        ])

        new_pois, merged_count = self._merge_roles(start_clusters, end_clusters, epsilon_meters)

        kept = []
        for poi in existing_pois or []:
            if clear_existing and poi.classification_status == POIStatus.DISCOVERED:
                continue
            kept.append(poi)
        if existing_pois:
            logger.info(f"保留历史POI {len(kept)}/{len(existing_pois)} 个")

        analyzed = set(start_points['trip_id']) | set(end_points['trip_id'])
        active_count = sum(1 for poi in new_pois if poi.classification_status == POIStatus.DISCOVERED)
        message = (f"发现 {active_count} 个POI（起点聚类 {len(start_clusters)}，"
                   f"终点聚类 {len(end_clusters)}，合并 {merged_count}）")
        logger.info(message)

        return DiscoveryResult(
            pois=kept + new_pois,
            new_pois=new_pois,
            start_poi_count=len(start_clusters),
            end_poi_count=len(end_clusters),
            merged_count=merged_count,
            total_trips_analyzed=len(analyzed),
            message=message,
            parameters={
                'epsilon_meters': epsilon_meters,
                'min_points': min_points,
                'min_idle_minutes': min_idle_minutes,
                'clear_existing': clear_existing,
            }
        )

    @staticmethod
    def _collect_points(trips: List[Trip], role: str, min_idle_hours: float) -> pd.DataFrame:
        """提取某一角色（起点/终点）的候选点"""
        rows = []
        for trip in trips:
            if (trip.idle_time_hours or 0.0) < min_idle_hours:
                continue
            if role == ROLE_START:
                if not trip.has_start_point:
                    continue
                rows.append((trip.id, trip.start_latitude, trip.start_longitude,
                             trip.idle_time_hours, trip.start_time))
            else:
                if not trip.has_end_point:
                    continue
                rows.append((trip.id, trip.end_latitude, trip.end_longitude,
                             trip.idle_time_hours, trip.end_time or trip.start_time))

        return pd.DataFrame(rows, columns=['trip_id', 'latitude', 'longitude',
                                           'idle_time_hours', 'timestamp'])

    def _cluster_role(self, points: pd.DataFrame, role: str,
                      epsilon_meters: float, min_points: int) -> List[Tuple[DiscoveredPOI, pd.DataFrame]]:
        """
        对单一角色的点做DBSCAN聚类

        Returns:
            [(POI, 成员点DataFrame)]
        """
        if len(points) < min_points:
            logger.info(f"{role} 候选点 {len(points)} 个，不足最小点数，跳过")
            return []

        coords = np.radians(points[['latitude', 'longitude']].to_numpy(dtype=float))
        labels = DBSCAN(
            eps=epsilon_meters / EARTH_RADIUS_METERS,
            min_samples=min_points,
            metric='haversine',
            algorithm='ball_tree',
        ).fit_predict(coords)

        offset = 0 if role == ROLE_START else self.poi_config.get('end_cluster_offset', 10000)
        clusters = []
        for label in sorted(set(labels) - {-1}):
            members = points[labels == label]
            # 边界点可能被其他簇占用，簇规模不足时视为噪声
            if len(members) < min_points:
                continue
            cluster_number = len(clusters) + 1
            poi = self._build_poi(members, role, cluster_number)
            poi.cluster_id = offset + int(label)
            clusters.append((poi, members))

        logger.info(f"{role} 聚类完成: 候选点 {len(points)}，簇 {len(clusters)}")
        return clusters

    def _build_poi(self, members: pd.DataFrame, role: str, cluster_number: int) -> DiscoveredPOI:
        """根据成员点构建POI"""
        poi = DiscoveredPOI(
            id=str(uuid.uuid4()),
            centroid_latitude=0.0,
            centroid_longitude=0.0,
            trip_count=0,
            service_radius_km=self.poi_config.get('default_service_radius_km', 1.0),
        )
        self._apply_statistics(poi, members)
        if role == ROLE_START:
            poi.start_point_count = len(members)
            poi.suggested_name = f"Start Point Cluster #{cluster_number} ({len(members)} trips)"
        else:
            poi.end_point_count = len(members)
            poi.suggested_name = f"End Point Cluster #{cluster_number} ({len(members)} trips)"
        return poi

    @staticmethod
    def _apply_statistics(poi: DiscoveredPOI, members: pd.DataFrame):
        """用成员点刷新质心、怠速、离散度和置信度"""
        latitudes = members['latitude'].to_numpy(dtype=float)
        longitudes = members['longitude'].to_numpy(dtype=float)

        poi.centroid_latitude, poi.centroid_longitude = spherical_centroid(latitudes, longitudes)
        poi.trip_count = len(members)
        poi.avg_idle_time_hours = float(members['idle_time_hours'].mean())
        poi.total_idle_time_hours = float(members['idle_time_hours'].sum())
        poi.gps_accuracy_meters = gps_accuracy_meters(latitudes, longitudes)
        poi.confidence_score = poi_confidence(poi.trip_count, poi.gps_accuracy_meters)

        timestamps = members['timestamp'].dropna()
        if len(timestamps):
            poi.first_seen = pd.Timestamp(timestamps.min()).to_pydatetime()
            poi.last_seen = pd.Timestamp(timestamps.max()).to_pydatetime()

    def _merge_roles(self, start_clusters: List[Tuple[DiscoveredPOI, pd.DataFrame]],
                     end_clusters: List[Tuple[DiscoveredPOI, pd.DataFrame]],
                     epsilon_meters: float) -> Tuple[List[DiscoveredPOI], int]:
        """
        合并相距不超过邻域半径的起点簇与终点簇

        Returns:
            (全部POI（含merged状态）, 被合并的POI数)
        """
        clusters = start_clusters + end_clusters
        n_start = len(start_clusters)
        n = len(clusters)
        if not start_clusters or not end_clusters:
            return [poi for poi, _ in clusters], 0

        adjacency = lil_matrix((n, n), dtype=bool)
        for i in range(n_start):
            start_poi = clusters[i][0]
            for j in range(n_start, n):
                end_poi = clusters[j][0]
                distance_m = geodesic((start_poi.centroid_latitude, start_poi.centroid_longitude),
                                      (end_poi.centroid_latitude, end_poi.centroid_longitude)).meters
                if distance_m <= epsilon_meters:
                    adjacency[i, j] = True
                    adjacency[j, i] = True

        n_components, labels = connected_components(csgraph=adjacency.tocsr(), directed=False,
                                                    return_labels=True)

        merged_count = 0
        for component in range(n_components):
            member_indexes = [i for i in range(n) if labels[i] == component]
            if len(member_indexes) < 2:
                continue

            # 行程最多的起点簇保留，其余并入
            survivor_index = min((i for i in member_indexes if i < n_start),
                                 key=lambda i: (-clusters[i][0].trip_count, clusters[i][0].cluster_id))
            survivor = clusters[survivor_index][0]

            all_members = pd.concat([clusters[i][1] for i in member_indexes], ignore_index=True)
            start_count = sum(len(clusters[i][1]) for i in member_indexes if i < n_start)
            end_count = sum(len(clusters[i][1]) for i in member_indexes if i >= n_start)

            self._apply_statistics(survivor, all_members)
            survivor.start_point_count = start_count
            survivor.end_point_count = end_count
            survivor.suggested_name = f"Mixed Use Location ({survivor.trip_count} trips)"

            for i in member_indexes:
                if i == survivor_index:
                    continue
                absorbed = clusters[i][0]
                absorbed.classification_status = POIStatus.MERGED
                absorbed.merged_into_id = survivor.id
                merged_count += 1

        return [poi for poi, _ in clusters], merged_count


def summarize_pois(pois: List[DiscoveredPOI]) -> pd.DataFrame:
    """
    生成POI摘要表

    Args:
        pois: POI列表

    Returns:
        摘要DataFrame
    """
    if not pois:
        return pd.DataFrame()

    df = pd.DataFrame([poi.to_dict() for poi in pois])
    return df.sort_values(['classification_status', 'trip_count'],
                          ascending=[True, False]).reset_index(drop=True)

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:17
# @Author  : hejun
"""
系统配置文件
"""
import os
from pathlib import Path


class Config:
    """配置类"""

    # 项目路径
    PROJECT_ROOT = Path(__file__).resolve().parent.parent
    DATA_DIR = PROJECT_ROOT / "data"
    OUTPUT_DIR = DATA_DIR / "output"

    # 确保目录存在
    for dir_path in [DATA_DIR, OUTPUT_DIR]:
        dir_path.mkdir(parents=True, exist_ok=True)

    # 算法参数
    ALGORITHM_CONFIG = {
        # 文本匹配参数
        'text_matching': {
            'trigram_tiers': [(0.8, 80, 'trigram_high'),
                              (0.6, 60, 'trigram_medium'),
                              (0.4, 40, 'trigram_low')],
            'business_identifier_confidence': 95,
            'location_reference_confidence': 85,
            'normalized_exact_confidence': 90,
            'business_boost': 10,  # 双方都含业务标识时的加分
            'location_boost': 10,  # 双方都含区域引用时的加分
            'cache_size': 10000,
        },

        # 别名查找参数
        'alias_lookup': {
            'fuzzy_cutoff': 70,  # rapidfuzz得分（0-100）需高于此值
            'default_business_boost': 10,
            'default_terminal_boost': 15,
        },

        # POI发现参数
        'poi_discovery': {
            'epsilon_meters': 500,  # 邻域半径（米）
            'min_points': 10,  # 最小点数（含自身）
            'min_idle_minutes': 30,  # 最小怠速时长（分钟）
            'clear_existing': False,
            'default_service_radius_km': 1.0,
            'end_cluster_offset': 10000,
        },

        # 空间匹配参数
        'geospatial': {
            'max_distance_km': 100,
            'service_area_confidence': 95,
            'distance_bands': [(25, 85), (50, 70), (100, 50)],  # (距离上限km, 置信度)
            'outside_bands_confidence': 25,
            'combined_carrier': 'Combined',
        },

        # 混合关联参数
        'correlation': {
            'date_tolerance_days': 3,
            'max_distance_km': 150,
            'min_confidence': 50,
            'enable_text_matching': True,
            'enable_geospatial': True,
            'enable_temporal': True,
            'enable_lookup_boost': True,
            'high_signal_threshold': 85,
            'moderate_signal_threshold': 60,
            'business_alias_boost': 20,
            'terminal_alias_boost': 25,
            'temporal_steps': [(0, 100), (1, 80), (2, 60), (3, 40), (5, 20)],  # (天数上限, 置信度)
            'manual_review_confidence': 70,
            'max_date_gap_days': 3,
            'max_terminal_distance_km': 100,
            'weak_signal_threshold': 50,
            'monotonic_fusion': True,
        },

        # 路线模式参数
        'route_patterns': {
            'min_trip_count': 10,
            'poi_min_confidence': 70,
            'efficiency_bands': [(0.15, 95), (0.25, 85), (0.35, 75)],  # (变异系数上限, 评分)
            'efficiency_default': 65,
            'quality_tiers': [
                # (等级, 最低POI置信度, GPS精度上限米, 最少行程数)
                ('platinum', 90, 30, 50),
                ('gold', 80, 50, 20),
                ('silver', 70, 100, 10),
            ],
        },

        # 性能参数
        'performance': {
            'n_jobs': max(1, (os.cpu_count() or 2) - 2),  # 并行任务数
            'batch_size': 1000,  # 批处理大小
        },
    }

    # 数据库配置（输出仓库）
    DATABASE_CONFIG = {
        'url': os.getenv('FLEET_DB_URL'),  # 优先使用完整URL，如 sqlite:///output.db
        'host': os.getenv('FLEET_DB_HOST', 'localhost'),
        'port': int(os.getenv('FLEET_DB_PORT', '3306')),
        'user': os.getenv('FLEET_DB_USER', 'root'),
        'password': os.getenv('FLEET_DB_PASSWORD', ''),
        'database': os.getenv('FLEET_DB_NAME', 'fleet_correlation'),
        'charset': 'utf8mb4',
        'ssl_disabled': True,
        'batch_size': 2000,
    }

    # 输入输出配置
    IO_CONFIG = {
        'input_encoding': 'utf-8',
        'output_encoding': 'utf-8-sig',  # 兼容Excel
        'date_formats': ['%Y-%m-%d', '%d/%m/%Y', '%Y/%m/%d'],
        'feed_files': {
            'trips': 'trips.csv',
            'terminals': 'terminals.csv',
            'customers': 'customers.csv',
            'deliveries': 'deliveries.csv',
            'business_aliases': 'business_aliases.csv',
            'terminal_aliases': 'terminal_aliases.csv',
            'pois': 'pois.csv',
        },
    }

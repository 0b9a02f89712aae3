#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:35
# @Author  : hejun
"""
行程-交付关联引擎
"""

from core.text_normalizer import LocationNormalizer
from core.similarity_calculator import SmartTextMatcher
from core.alias_lookup import AliasResolver
from core.clustering import PoiDiscovery
from core.poi_registry import PoiRegistry
from core.geospatial_matcher import GeospatialMatcher, ReferenceRegistry
from core.correlation_engine import HybridCorrelationEngine, CorrelationSettings
from core.route_patterns import RoutePatternAggregator
from utils.parallel_processor import ParallelProcessor

__version__ = '1.0.0'
__author__ = 'Fleet Correlation Team'

__all__ = [
    'LocationNormalizer',
    'SmartTextMatcher',
    'AliasResolver',
    'PoiDiscovery',
    'PoiRegistry',
    'GeospatialMatcher',
    'ReferenceRegistry',
    'HybridCorrelationEngine',
    'CorrelationSettings',
    'RoutePatternAggregator',
    'ParallelProcessor',
]

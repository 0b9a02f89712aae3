#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:16
# @Author  : hejun
"""
地点文本相似度计算模块
按 业务标识 > 区域引用 > 归一化精确匹配 > 三元组相似度 的顺序判定
"""
import collections
import re
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, FrozenSet, Tuple

from core.models import DeliveryRecord
from core.text_normalizer import (normalize_location_name, extract_business_identifier,
                                  extract_location_reference)
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('similarity_calculator.py').get_logger()

WORD_PATTERN = re.compile(r'[^0-9a-z]+')


def extract_trigrams(text: str) -> FrozenSet[str]:
    """
    提取三元组集合（与PostgreSQL pg_trgm一致）

    每个单词小写后前补两个空格、后补一个空格，再切分为三字符片段
    """
    trigrams = set()
    for word in WORD_PATTERN.split(text.lower()):
        if not word:
            continue
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            trigrams.add(padded[i:i + 3])
    return frozenset(trigrams)


def trigram_similarity(text1: str, text2: str) -> float:
    """
    计算三元组相似度（Jaccard系数）

    Args:
        text1: 文本1
        text2: 文本2

    Returns:
        相似度 [0, 1]
    """
    trigrams1 = extract_trigrams(text1 or '')
    trigrams2 = extract_trigrams(text2 or '')
    if not trigrams1 or not trigrams2:
        return 0.0

    union = len(trigrams1 | trigrams2)
    return len(trigrams1 & trigrams2) / union


class LRUCache:
    """LRU缓存实现，限制缓存大小"""

    def __init__(self, maxsize: int = 10000):
        self.cache = collections.OrderedDict()
        self.maxsize = maxsize

    def get(self, key):
        if key in self.cache:
            # 将访问的键移到末尾（标记为最近使用）
            self.cache.move_to_end(key)
            return self.cache[key]
        return None

    def put(self, key, value):
        if key in self.cache:
            self.cache.move_to_end(key)
        elif len(self.cache) >= self.maxsize:
            # 删除最久未使用的项
            self.cache.popitem(last=False)

        self.cache[key] = value


@dataclass(frozen=True)
class TextMatchResult:
    """文本匹配结果"""
    similarity_score: float
    match_confidence: int
    match_method: str
    normalized_text1: str
    normalized_text2: str
    business_match: bool
    location_match: bool


NULL_INPUT_RESULT = TextMatchResult(0.0, 0, 'null_input', '', '', False, False)


class SmartTextMatcher:
    """地点文本智能匹配器"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}

        self.text_config = self.config.get('text_matching', {
            'trigram_tiers': [(0.8, 80, 'trigram_high'),
                              (0.6, 60, 'trigram_medium'),
                              (0.4, 40, 'trigram_low')],
            'business_identifier_confidence': 95,
            'location_reference_confidence': 85,
            'normalized_exact_confidence': 90,
            'business_boost': 10,
            'location_boost': 10,
            'cache_size': 10000,
        })
        self.tiers = sorted(self.text_config['trigram_tiers'], key=lambda tier: -tier[0])
        self.cache = LRUCache(self.text_config.get('cache_size', 10000))

    def match(self, text1: Optional[str], text2: Optional[str],
              match_type: str = 'general') -> TextMatchResult:
        """
        比较两个地点文本

        Args:
            text1: 文本1（通常为行程地点）
            text2: 文本2（通常为客户或码头名称）
            match_type: 匹配类型，仅用于日志

        Returns:
            TextMatchResult
        """
        if not isinstance(text1, str) or not text1.strip() \
                or not isinstance(text2, str) or not text2.strip():
            return NULL_INPUT_RESULT

        cache_key = (text1, text2)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        result = self._match_uncached(text1, text2)
        self.cache.put(cache_key, result)
        logger.debug(f"[{match_type}] {text1!r} vs {text2!r} -> {result.match_method} {result.match_confidence}")
        return result

    def _match_uncached(self, text1: str, text2: str) -> TextMatchResult:
        norm1 = normalize_location_name(text1)
        norm2 = normalize_location_name(text2)
        business1 = extract_business_identifier(text1)
        business2 = extract_business_identifier(text2)
        location1 = extract_location_reference(text1)
        location2 = extract_location_reference(text2)

        # 1. 业务标识一致
        if business1 is not None and business1 == business2:
            confidence = self.text_config['business_identifier_confidence']
            return TextMatchResult(confidence / 100, confidence, 'business_identifier_exact',
                                   norm1, norm2, True, False)

        # 2. 区域引用一致
        if location1 is not None and location1 == location2:
            confidence = self.text_config['location_reference_confidence']
            return TextMatchResult(confidence / 100, confidence, 'location_reference_exact',
                                   norm1, norm2, False, True)

        # 3. 归一化后完全一致
        if norm1 and norm1 == norm2:
            confidence = self.text_config['normalized_exact_confidence']
            return TextMatchResult(confidence / 100, confidence, 'normalized_exact',
                                   norm1, norm2, False, False)

        # 4. 三元组相似度分级 + 同类标识加分
        similarity = trigram_similarity(norm1, norm2)
        confidence, method = 0, 'no_match'
        for threshold, tier_confidence, tier_method in self.tiers:
            if similarity >= threshold:
                confidence, method = tier_confidence, tier_method
                break

        business_match = business1 is not None and business2 is not None
        location_match = location1 is not None and location2 is not None
        if business_match:
            confidence += self.text_config['business_boost']
        if location_match:
            confidence += self.text_config['location_boost']

        return TextMatchResult(similarity, min(confidence, 100), method,
                               norm1, norm2, business_match, location_match)

    def match_trip_with_customers(self, start_location: Optional[str], end_location: Optional[str],
                                  deliveries: List[DeliveryRecord],
                                  min_confidence: int = 60) -> List[Dict[str, Any]]:
        """
        将行程起终点文本与交付记录中的客户/码头名称进行匹配

        Args:
            start_location: 行程起点文本
            end_location: 行程终点文本
            deliveries: 候选交付记录
            min_confidence: 最低置信度

        Returns:
            去重后的客户匹配列表，按置信度降序
        """
        seen = {}
        for delivery in deliveries:
            comparisons: List[Tuple[str, TextMatchResult]] = [
                ('start', self.match(start_location, delivery.customer, 'customer_start')),
                ('end', self.match(end_location, delivery.customer, 'customer_end')),
                ('terminal', self.match(end_location, delivery.terminal, 'terminal')),
            ]
            for match_location, result in comparisons:
                if result.match_confidence < min_confidence:
                    continue
                key = (delivery.customer, delivery.terminal, match_location)
                existing = seen.get(key)
                if existing is None or result.match_confidence > existing['confidence_score']:
                    seen[key] = {
                        'customer_name': delivery.customer,
                        'terminal_name': delivery.terminal,
                        'carrier': delivery.carrier,
                        'match_location': match_location,
                        'confidence_score': result.match_confidence,
                        'match_method': result.match_method,
                        'business_identifier': extract_business_identifier(delivery.customer),
                        'location_reference': extract_location_reference(delivery.customer),
                    }

        return sorted(seen.values(), key=lambda item: (-item['confidence_score'], item['customer_name']))

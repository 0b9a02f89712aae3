#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:17
# @Author  : hejun
"""
地点文本标准化模块
将行程遥测和交付记录中的自由文本地点名称归一化，
并提取业务标识与区域引用
"""
import re
from functools import lru_cache
from typing import Dict, List, Any, Optional, Tuple

# 规则均按顺序匹配，先命中者生效
LEADING_COUNTRY_PATTERN = re.compile(r'^(AU |AUSTRALIA )')
TERMINAL_PREFIX_PATTERN = re.compile(r'(TERM |TERMINAL |THDPTY )')
ENTITY_SUFFIX_PATTERN = re.compile(r'\s*(PTY LTD|PTY|LTD|CORPORATION|CORP|INC)$')
GENERIC_SUFFIX_PATTERN = re.compile(r'\s*(GARAGE|SERVICE STATION)$')
WHITESPACE_PATTERN = re.compile(r'\s+')

# (关键词组, 规范码头名)：任一关键词出现即归一为规范名
CANONICAL_TERMINAL_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (('KEWDALE',), 'TERMINAL KEWDALE'),
    (('GERALDTON',), 'TERMINAL GERALDTON'),
    (('KALGOORLIE',), 'TERMINAL KALGOORLIE'),
    (('COOGEE', 'ROCKINGHAM'), 'TERMINAL COOGEE ROCKINGHAM'),
    (('ESPERANCE',), 'TERMINAL ESPERANCE'),
    (('FREMANTLE',), 'TERMINAL FREMANTLE'),
    (('BUNBURY',), 'TERMINAL BUNBURY'),
    (('PORT HEDLAND',), 'TERMINAL PORT HEDLAND'),
    (('NEWMAN',), 'TERMINAL NEWMAN'),
    (('BROOME',), 'TERMINAL BROOME'),
    (('ALBANY',), 'TERMINAL ALBANY'),
    (('MERREDIN',), 'TERMINAL MERREDIN'),
    (('WONGAN HILLS',), 'TERMINAL WONGAN HILLS'),
    (('KARRATHA',), 'TERMINAL KARRATHA'),
]

# (任一关键词组, 必须同时出现的关键词组, 业务标识)
BUSINESS_IDENTIFIER_RULES: List[Tuple[Tuple[str, ...], Tuple[str, ...], str]] = [
    (('KCGM', 'KALGOORLIE CONSOLIDATED GOLD'), (), 'KCGM'),
    (('BGC',), (), 'BGC'),
    (('SOUTH32', 'WORSLEY'), (), 'SOUTH32_WORSLEY'),
    (('WESTERN POWER',), (), 'WESTERN_POWER'),
    (('BHP',), (), 'BHP'),
    (('AIRPORT', 'AIRPT'), (), 'AIRPORT'),
    (('PRECAST',), (), 'BGC_PRECAST'),
    (('CONCRETE',), ('BGC',), 'BGC_CONCRETE'),
    (('NAVAL BASE',), (), 'BGC_NAVAL_BASE'),
    (('KWINANA BEACH',), (), 'BGC_KWINANA'),
    (('JUNDEE',), ('MINE',), 'JUNDEE_MINE'),
    (('FORRESTFIELD',), ('AWR',), 'AWR_FORRESTFIELD'),
]

# (关键词组, 区域引用)
LOCATION_REFERENCE_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (('KALGOORLIE',), 'KALGOORLIE'),
    (('GERALDTON',), 'GERALDTON'),
    (('KWINANA',), 'KWINANA'),
    (('FORRESTFIELD',), 'FORRESTFIELD'),
    (('NAVAL BASE',), 'NAVAL_BASE'),
    (('COOGEE', 'ROCKINGHAM'), 'COOGEE_ROCKINGHAM'),
    (('FREMANTLE',), 'FREMANTLE'),
    (('BUNBURY',), 'BUNBURY'),
    (('ESPERANCE',), 'ESPERANCE'),
    (('ALBANY',), 'ALBANY'),
    (('PORT HEDLAND',), 'PORT_HEDLAND'),
    (('NEWMAN',), 'NEWMAN'),
    (('BROOME',), 'BROOME'),
    (('KARRATHA',), 'KARRATHA'),
    (('MERREDIN',), 'MERREDIN'),
    (('WONGAN HILLS',), 'WONGAN_HILLS'),
    (('PERTH',), 'PERTH'),
    (('KEWDALE',), 'KEWDALE'),
    (('PILBARA',), 'PILBARA'),
]


def _is_blank(text: Optional[str]) -> bool:
    return not isinstance(text, str) or not text.strip()


@lru_cache(maxsize=10000)
def normalize_location_name(text: Optional[str]) -> str:
    """
    归一化地点名称

    Args:
        text: 原始地点文本

    Returns:
        归一化后的大写文本；空输入返回空字符串
    """
    if _is_blank(text):
        return ''

    normalized = text.upper().strip()
    normalized = LEADING_COUNTRY_PATTERN.sub('', normalized, count=1)
    normalized = TERMINAL_PREFIX_PATTERN.sub('TERMINAL ', normalized)
    normalized = ENTITY_SUFFIX_PATTERN.sub('', normalized)
    normalized = GENERIC_SUFFIX_PATTERN.sub('', normalized)

    for keywords, canonical in CANONICAL_TERMINAL_RULES:
        if any(keyword in normalized for keyword in keywords):
            normalized = canonical
            break

    return WHITESPACE_PATTERN.sub(' ', normalized).strip()


@lru_cache(maxsize=10000)
def extract_business_identifier(text: Optional[str]) -> Optional[str]:
    """从地点文本中提取业务标识，未命中返回None"""
    if _is_blank(text):
        return None

    upper_text = text.upper()
    for any_of, all_of, identifier in BUSINESS_IDENTIFIER_RULES:
        if any(keyword in upper_text for keyword in any_of) and \
                all(keyword in upper_text for keyword in all_of):
            return identifier
    return None


@lru_cache(maxsize=10000)
def extract_location_reference(text: Optional[str]) -> Optional[str]:
    """从地点文本中提取区域引用，未命中返回None"""
    if _is_blank(text):
        return None

    upper_text = text.upper()
    for keywords, reference in LOCATION_REFERENCE_RULES:
        if any(keyword in upper_text for keyword in keywords):
            return reference
    return None


class LocationNormalizer:
    """地点文本标准化器"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}

    def normalize_single(self, text: str) -> Dict[str, Any]:
        """
        标准化单个地点文本

        Args:
            text: 原始地点文本

        Returns:
            标准化结果字典
        """
        if _is_blank(text):
            return self._empty_result(text)

        return {
            'original': text,
            'cleaned': WHITESPACE_PATTERN.sub(' ', text).strip(),
            'normalized': normalize_location_name(text),
            'business_identifier': extract_business_identifier(text),
            'location_reference': extract_location_reference(text),
            'success': True
        }

    def _empty_result(self, text: Optional[str] = "") -> Dict[str, Any]:
        """返回空结果"""
        return {
            'original': text or '',
            'cleaned': '',
            'normalized': '',
            'business_identifier': None,
            'location_reference': None,
            'success': False
        }

    def batch_normalize(self, texts: List[str], n_jobs: int = 1) -> List[Dict[str, Any]]:
        """批量标准化"""
        if n_jobs == 1 or len(texts) < 1000:
            return [self.normalize_single(text) for text in texts]

        from joblib import Parallel, delayed

        return Parallel(n_jobs=n_jobs)(
            delayed(self.normalize_single)(text) for text in texts
        )

    @staticmethod
    def cache_info() -> Dict[str, Any]:
        """缓存命中统计"""
        info = normalize_location_name.cache_info()
        return {'hits': info.hits, 'misses': info.misses, 'size': info.currsize}

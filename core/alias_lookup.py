#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/8 11:20
# @Author  : hejun
"""
别名查找模块
把行程/交付记录中的名称解析为规范的业务名或码头名
"""
from typing import Dict, List, Any, Optional, Tuple

from rapidfuzz import fuzz, process

from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('alias_lookup.py').get_logger()

# (别名, 规范名, 加分)
DEFAULT_BUSINESS_ALIASES: List[Tuple[str, str, int]] = [
    ('KCGM FIMISTON EX KALGOORLIE', 'KCGM', 10),
    ('KALGOORLIE CONSOLIDATED GOLD MINES', 'KCGM', 10),
    ('KCGM FIMISTON', 'KCGM', 10),
    ('FIMISTON', 'KCGM', 5),
    ('BGC CONTRACTING', 'BGC', 10),
    ('BGC PRECAST', 'BGC', 10),
    ('BGC CONCRETE', 'BGC', 10),
    ('BGC NAVAL BASE', 'BGC', 10),
    ('BGC KWINANA BEACH', 'BGC', 10),
    ('SOUTH32 WORSLEY ALUMINA', 'SOUTH32_WORSLEY', 10),
    ('WORSLEY ALUMINA', 'SOUTH32_WORSLEY', 10),
    ('WESTERN POWER CORPORATION', 'WESTERN_POWER', 10),
    ('WPC', 'WESTERN_POWER', 5),
    ('AU AIRPT PERTH', 'AIRPORT', 10),
    ('PERTH AIRPORT', 'AIRPORT', 10),
    ('AWR FORRESTFIELD', 'AWR_FORRESTFIELD', 10),
    ('JUNDEE MINE', 'JUNDEE_MINE', 10),
]

DEFAULT_TERMINAL_NAMES: List[str] = [
    'Kewdale', 'Geraldton', 'Kalgoorlie', 'Coogee Rockingham', 'Esperance', 'Fremantle',
    'Bunbury', 'Port Hedland', 'Newman', 'Broome', 'Albany', 'Merredin', 'Wongan Hills',
    'Karratha',
]


class AliasTable:
    """单类别名表：精确匹配优先，其次模糊匹配"""

    def __init__(self, entries: List[Tuple[str, str, int]], fuzzy_cutoff: float = 70):
        self.fuzzy_cutoff = fuzzy_cutoff
        self.exact: Dict[str, Tuple[str, int]] = {}
        for alias, canonical, boost in entries:
            key = alias.strip().upper()
            current = self.exact.get(key)
            # 同一别名指向多个规范名时保留加分最高者
            if current is None or boost > current[1]:
                self.exact[key] = (canonical, boost)
        self.choices = list(self.exact.keys())

    def __len__(self):
        return len(self.exact)

    def resolve(self, text: Optional[str]) -> Optional[str]:
        """
        解析名称

        Args:
            text: 待解析文本

        Returns:
            规范名，无法解析返回None
        """
        if not isinstance(text, str) or not text.strip() or not self.choices:
            return None

        key = text.strip().upper()
        if key in self.exact:
            return self.exact[key][0]

        best = process.extractOne(key, self.choices, scorer=fuzz.ratio,
                                  score_cutoff=self.fuzzy_cutoff)
        if best is None:
            return None

        alias, score, _ = best
        # score_cutoff 含等号，这里要求严格大于阈值
        if score <= self.fuzzy_cutoff:
            return None
        logger.debug(f"模糊别名匹配: {text!r} -> {alias!r} ({score:.1f})")
        return self.exact[alias][0]


class AliasResolver:
    """业务名、码头名、地点名别名解析器"""

    def __init__(self,
                 business_aliases: Optional[List[Tuple[str, str, int]]] = None,
                 terminal_aliases: Optional[List[Tuple[str, str, int]]] = None,
                 location_aliases: Optional[List[Tuple[str, str, int]]] = None,
                 config: Dict[str, Any] = None):
        self.config = config or {}
        self.alias_config = self.config.get('alias_lookup', {
            'fuzzy_cutoff': 70,
            'default_business_boost': 10,
            'default_terminal_boost': 15,
        })
        cutoff = self.alias_config['fuzzy_cutoff']

        if business_aliases is None:
            business_aliases = list(DEFAULT_BUSINESS_ALIASES)
        if terminal_aliases is None:
            terminal_aliases = self.default_terminal_aliases(self.alias_config['default_terminal_boost'])

        self.business = AliasTable(business_aliases, cutoff)
        self.terminal = AliasTable(terminal_aliases, cutoff)
        self.location = AliasTable(location_aliases or [], cutoff)

    @staticmethod
    def default_terminal_aliases(boost: int = 15) -> List[Tuple[str, str, int]]:
        """码头默认别名：'AU TERM <NAME>' 与 'TERMINAL <NAME>' 形式"""
        entries = []
        for name in DEFAULT_TERMINAL_NAMES:
            upper_name = name.upper()
            entries.append((f'AU TERM {upper_name}', name, boost))
            entries.append((f'TERMINAL {upper_name}', name, boost))
            entries.append((upper_name, name, boost))
        return entries

    @classmethod
    def from_records(cls, business_rows: List[Dict[str, Any]] = None,
                     terminal_rows: List[Dict[str, Any]] = None,
                     config: Dict[str, Any] = None) -> 'AliasResolver':
        """
        从别名数据行构建解析器

        Args:
            business_rows: 含 alias_name / canonical_name / confidence_boost 的字典列表
            terminal_rows: 同上
            config: 算法配置

        Returns:
            AliasResolver
        """
        alias_config = (config or {}).get('alias_lookup', {})

        def to_entries(rows, default_boost):
            if rows is None:
                return None
            entries = []
            for row in rows:
                alias = row.get('alias_name')
                canonical = row.get('canonical_name')
                if not alias or not canonical:
                    logger.warning(f"跳过不完整的别名行: {row}")
                    continue
                boost = row.get('confidence_boost')
                entries.append((str(alias), str(canonical),
                                int(boost) if boost is not None else default_boost))
            return entries

        return cls(business_aliases=to_entries(business_rows, alias_config.get('default_business_boost', 10)),
                   terminal_aliases=to_entries(terminal_rows, alias_config.get('default_terminal_boost', 15)),
                   config=config)

    def resolve_business_name(self, text: Optional[str]) -> Optional[str]:
        return self.business.resolve(text)

    def resolve_terminal_name(self, text: Optional[str]) -> Optional[str]:
        return self.terminal.resolve(text)

    def resolve_location_name(self, text: Optional[str]) -> Optional[str]:
        return self.location.resolve(text)

    def get_stats(self) -> Dict[str, int]:
        """获取别名表统计"""
        return {
            'business_aliases': len(self.business),
            'terminal_aliases': len(self.terminal),
            'location_aliases': len(self.location),
        }

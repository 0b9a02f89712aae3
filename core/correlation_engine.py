#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/9 09:40
# @Author  : hejun
"""
混合关联引擎
融合文本、空间、时间三类信号，为行程与交付记录打分关联
"""
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Any, Optional, Tuple

import pandas as pd

from core.alias_lookup import AliasResolver
from core.exceptions import ConfigurationError
from core.geospatial_matcher import GeospatialMatcher, TerminalMatch
from core.models import Trip, DeliveryRecord, Correlation, MatchQuality, Terminal
from core.similarity_calculator import SmartTextMatcher
from core.text_normalizer import normalize_location_name
from utils.logger import setup_logging
from utils.parallel_processor import ParallelProcessor

# 初始化日志记录器
logger = setup_logging('correlation_engine.py').get_logger()

TEXT, GEO, TEMPORAL = 'text', 'geo', 'temporal'
HIGH, MODERATE = 'high', 'moderate'


@dataclass
class CorrelationSettings:
    """关联参数"""
    date_tolerance_days: int = 3
    max_distance_km: float = 150
    min_confidence: int = 50
    enable_text_matching: bool = True
    enable_geospatial: bool = True
    enable_temporal: bool = True
    enable_lookup_boost: bool = True
    high_signal_threshold: int = 85
    moderate_signal_threshold: int = 60
    business_alias_boost: int = 20
    terminal_alias_boost: int = 25
    temporal_steps: List[Tuple[int, int]] = field(
        default_factory=lambda: [(0, 100), (1, 80), (2, 60), (3, 40), (5, 20)])
    manual_review_confidence: int = 70
    max_date_gap_days: int = 3
    max_terminal_distance_km: float = 100
    weak_signal_threshold: int = 50
    monotonic_fusion: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any] = None, **overrides) -> 'CorrelationSettings':
        """由 ALGORITHM_CONFIG['correlation'] 构建，overrides 中为 None 的项忽略"""
        section = dict((config or {}).get('correlation', {}))
        section.update({key: value for key, value in overrides.items() if value is not None})
        known = set(cls.__dataclass_fields__)
        settings = cls(**{key: value for key, value in section.items() if key in known})
        settings.validate()
        return settings

    def validate(self):
        """参数校验，非法参数属于致命配置缺陷"""
        if self.date_tolerance_days is None or self.date_tolerance_days < 0:
            raise ConfigurationError(f"日期容差不能为负: {self.date_tolerance_days}", 'date_tolerance_days')
        if self.max_distance_km is None or self.max_distance_km < 0:
            raise ConfigurationError(f"最大搜索半径不能为负: {self.max_distance_km}", 'max_distance_km')
        if not 0 <= self.min_confidence <= 100:
            raise ConfigurationError(f"最低置信度需在0-100之间: {self.min_confidence}", 'min_confidence')
        if self.moderate_signal_threshold > self.high_signal_threshold:
            raise ConfigurationError("中等信号阈值不能高于强信号阈值", 'moderate_signal_threshold')


@dataclass(frozen=True)
class FusionRule:
    """
    融合决策表中的一条规则

    min_text / min_geo 为 'high'、'moderate' 或 None（不要求）；
    terms 为加权信号分组，每组先求和再取整
    """
    name: str
    min_text: Optional[str]
    min_geo: Optional[str]
    base: int
    terms: Tuple[Tuple[Tuple[str, str], ...], ...]

    def applies(self, signals: Dict[str, int], settings: CorrelationSettings) -> bool:
        return _meets(signals[TEXT], self.min_text, settings) and _meets(signals[GEO], self.min_geo, settings)

    def score(self, signals: Dict[str, int]) -> int:
        total = self.base
        for group in self.terms:
            weighted = sum(Decimal(weight) * Decimal(int(signals[signal])) for signal, weight in group)
            total += int(weighted.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        return min(total, 100)


# 先命中者即为判定规则（按强信号优先）
FUSION_RULES: Tuple[FusionRule, ...] = (
    FusionRule('text_and_geo_high', HIGH, HIGH, 95, (((TEMPORAL, '0.05'),),)),
    FusionRule('text_high', HIGH, None, 80, (((GEO, '0.1'),), ((TEMPORAL, '0.1'),))),
    FusionRule('geo_high', None, HIGH, 75, (((TEXT, '0.1'),), ((TEMPORAL, '0.15'),))),
    FusionRule('text_and_geo_moderate', MODERATE, MODERATE, 0,
               (((TEXT, '0.6'), (GEO, '0.4')), ((TEMPORAL, '0.1'),))),
    FusionRule('text_moderate', MODERATE, None, 60, (((GEO, '0.15'),), ((TEMPORAL, '0.25'),))),
    FusionRule('geo_moderate', None, MODERATE, 55, (((TEXT, '0.2'),), ((TEMPORAL, '0.25'),))),
    FusionRule('weighted_fallback', None, None, 0, (((TEXT, '0.4'), (GEO, '0.3'), (TEMPORAL, '0.3')),)),
)


def _meets(value: int, level: Optional[str], settings: CorrelationSettings) -> bool:
    if level is None:
        return True
    threshold = settings.high_signal_threshold if level == HIGH else settings.moderate_signal_threshold
    return value >= threshold


@dataclass(frozen=True)
class FusionResult:
    """融合结果：得分、产生该得分的规则，以及该规则实际取用的文本/空间信号值"""
    score: int
    rule_name: str
    text_input: int
    geo_input: int


# 复算总置信度所需的参数，随分项一起存入 confidence_breakdown
FUSION_PARAMETERS = ('high_signal_threshold', 'moderate_signal_threshold', 'monotonic_fusion')


def fusion_rule(name: str, rules: Tuple[FusionRule, ...] = FUSION_RULES) -> FusionRule:
    """按名称取决策表中的规则"""
    for rule in rules:
        if rule.name == name:
            return rule
    raise KeyError(f"未知融合规则: {name}")


def fuse_signals(text_confidence: int, geo_confidence: int, temporal_confidence: int,
                 settings: CorrelationSettings = None,
                 rules: Tuple[FusionRule, ...] = FUSION_RULES) -> FusionResult:
    """
    融合三类信号为总置信度

    单调模式下取各信号都不强于当前值的所有点上的最高分。规则在各自区域内单调，
    只需检查阈值下方的拐角；返回的规则与拐角即为实际产生得分的那一组。

    Args:
        text_confidence: 文本置信度
        geo_confidence: 空间置信度
        temporal_confidence: 时间置信度
        settings: 关联参数
        rules: 决策表

    Returns:
        FusionResult
    """
    settings = settings or CorrelationSettings()
    best = _first_match(text_confidence, geo_confidence, temporal_confidence, settings, rules)
    if not settings.monotonic_fusion:
        return best

    thresholds = (settings.moderate_signal_threshold, settings.high_signal_threshold)
    text_corners = {text_confidence} | {min(text_confidence, value - 1) for value in thresholds}
    geo_corners = {geo_confidence} | {min(geo_confidence, value - 1) for value in thresholds}
    for text_value in sorted(text_corners, reverse=True):
        for geo_value in sorted(geo_corners, reverse=True):
            corner = _first_match(text_value, geo_value, temporal_confidence, settings, rules)
            # 严格大于：同分保留实际信号值上的规则
            if corner.score > best.score:
                best = corner
    return best


def fuse_confidence(text_confidence: int, geo_confidence: int, temporal_confidence: int,
                    settings: CorrelationSettings = None,
                    rules: Tuple[FusionRule, ...] = FUSION_RULES) -> Tuple[int, str]:
    """融合三类信号，返回 (总置信度, 产生该得分的规则名)"""
    result = fuse_signals(text_confidence, geo_confidence, temporal_confidence, settings, rules)
    return result.score, result.rule_name


def _first_match(text_confidence: int, geo_confidence: int, temporal_confidence: int,
                 settings: CorrelationSettings, rules: Tuple[FusionRule, ...]) -> FusionResult:
    signals = {TEXT: text_confidence, GEO: geo_confidence, TEMPORAL: temporal_confidence}
    for rule in rules:
        if rule.applies(signals, settings):
            return FusionResult(rule.score(signals), rule.name, text_confidence, geo_confidence)
    return FusionResult(0, 'none', text_confidence, geo_confidence)


def temporal_confidence(date_difference_days: int, settings: CorrelationSettings = None) -> int:
    """时间置信度阶梯函数"""
    settings = settings or CorrelationSettings()
    for max_days, confidence in settings.temporal_steps:
        if date_difference_days <= max_days:
            return confidence
    return 0


def assess_quality(text_conf: int, geo_conf: int, temporal_conf: int) -> MatchQuality:
    """关联质量标签"""
    if text_conf >= 85 and geo_conf >= 85 and temporal_conf >= 80:
        return MatchQuality.EXCELLENT
    if text_conf >= 75 and geo_conf >= 70 and temporal_conf >= 60:
        return MatchQuality.GOOD
    if text_conf >= 60 or geo_conf >= 60:
        return MatchQuality.FAIR
    return MatchQuality.POOR


def risk_flags(text_conf: int, geo_conf: int, date_difference_days: int,
               terminal_distance_km: Optional[float],
               settings: CorrelationSettings = None) -> List[str]:
    """风险标记"""
    settings = settings or CorrelationSettings()
    flags = []
    if date_difference_days > settings.max_date_gap_days:
        flags.append('large_date_gap')
    if terminal_distance_km is not None and terminal_distance_km > settings.max_terminal_distance_km:
        flags.append('long_distance')
    if text_conf < settings.weak_signal_threshold and geo_conf < settings.weak_signal_threshold:
        flags.append('low_confidence')
    if text_conf == 0 and geo_conf == 0:
        flags.append('no_location_match')
    return flags


def requires_review(overall_confidence: int, date_difference_days: int,
                    terminal_distance_km: Optional[float], flags: List[str],
                    settings: CorrelationSettings = None) -> bool:
    """是否需要人工复核"""
    settings = settings or CorrelationSettings()
    return (overall_confidence < settings.manual_review_confidence
            or date_difference_days > settings.max_date_gap_days
            or (terminal_distance_km is not None and terminal_distance_km > settings.max_terminal_distance_km)
            or len(flags) > 1)


def assess_correlation_quality(correlation: Correlation) -> Dict[str, Any]:
    """
    关联质量评估：置信因素、风险因素与处理建议

    Args:
        correlation: 关联结果

    Returns:
        评估字典
    """
    factors = []
    if correlation.text_confidence >= 85:
        factors.append('High text match confidence')
    if correlation.geo_confidence >= 85:
        factors.append('High geospatial match confidence')
    if correlation.temporal_confidence >= 80:
        factors.append('Excellent temporal correlation')
    if correlation.business_identifier_match:
        factors.append('Business identifier match found')
    if correlation.within_service_area:
        factors.append('Trip within terminal service area')

    risks = []
    if correlation.date_difference_days > 3:
        risks.append('Large date difference between trip and delivery')
    if correlation.terminal_distance_km is not None and correlation.terminal_distance_km > 100:
        risks.append('Long distance between trip and terminal')
    if correlation.text_confidence < 50 and correlation.geo_confidence < 50:
        risks.append('Low confidence in both text and location matching')

    overall = correlation.overall_confidence
    if overall >= 90:
        level = 'excellent'
        recommendations = ['High confidence correlation - suitable for automatic verification']
    elif overall >= 75:
        level = 'good'
        recommendations = ['Good correlation - minimal manual review needed']
    elif overall >= 60:
        level = 'fair'
        recommendations = ['Moderate correlation - recommend manual verification']
    else:
        level = 'poor'
        recommendations = ['Low confidence correlation - requires careful manual review']
    if len(risks) > 1:
        recommendations.append('Multiple risk factors present - investigate thoroughly')

    return {
        'quality_score': overall,
        'quality_level': level,
        'confidence_factors': factors,
        'risk_factors': risks,
        'recommendations': recommendations,
    }


@dataclass
class CorrelationRun:
    """一次批量关联的结果"""
    correlations: List[Correlation]
    start_date: Optional[date]
    end_date: Optional[date]
    trips_processed: int

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([correlation.to_dict() for correlation in self.correlations])

    def summaries(self) -> List[Dict[str, Any]]:
        """
        按行程汇总：关联数、最佳关联、平均置信度、是否有excellent、需复核数

        Returns:
            按最佳置信度、关联数降序排列的汇总列表
        """
        if not self.correlations:
            return []

        df = self.to_dataframe()
        rows = []
        for (trip_id, trip_date), group in df.groupby(['trip_id', 'trip_date'], sort=False):
            best = group.sort_values('overall_confidence', ascending=False, kind='mergesort').iloc[0]
            rows.append({
                'trip_id': trip_id,
                'trip_date': trip_date,
                'correlation_count': len(group),
                'best_correlation_confidence': int(best['overall_confidence']),
                'best_correlation_customer': best['customer_name'],
                'best_correlation_terminal': best['terminal_name'],
                'avg_correlation_confidence': round(float(group['overall_confidence'].mean()), 2),
                'has_excellent_matches': bool((group['match_quality'] == MatchQuality.EXCELLENT.value).any()),
                'requires_review_count': int(group['requires_manual_review'].sum()),
            })
        rows.sort(key=lambda row: (-row['best_correlation_confidence'], -row['correlation_count']))
        return rows


class HybridCorrelationEngine:
    """混合关联引擎"""

    def __init__(self, geo_matcher: GeospatialMatcher,
                 text_matcher: Optional[SmartTextMatcher] = None,
                 alias_resolver: Optional[AliasResolver] = None,
                 settings: Optional[CorrelationSettings] = None,
                 config: Dict[str, Any] = None):
        if geo_matcher is None or geo_matcher.registry is None:
            raise ConfigurationError("空间匹配器缺少码头注册表", 'terminal registry')
        self.config = config or {}
        self.geo_matcher = geo_matcher
        self.text_matcher = text_matcher or SmartTextMatcher(self.config)
        self.alias_resolver = alias_resolver or AliasResolver(config=self.config)
        self.settings = settings or CorrelationSettings.from_config(self.config)
        self.settings.validate()

        # 码头名称索引（原名与归一化名）
        self._terminal_index: Dict[str, Terminal] = {}
        for terminal in self.geo_matcher.registry.terminals:
            self._terminal_index.setdefault(terminal.name.strip().upper(), terminal)
            self._terminal_index.setdefault(normalize_location_name(terminal.name), terminal)

    def candidate_deliveries(self, trip: Trip, deliveries: List[DeliveryRecord]) -> List[Tuple[DeliveryRecord, int]]:
        """
        容差窗口内的候选交付记录，按日期差、ID排序

        Returns:
            [(交付记录, 日期差天数)]
        """
        trip_date = trip.trip_date
        candidates = []
        for delivery in deliveries:
            if delivery.delivery_date is None:
                logger.debug(f"交付记录 {delivery.id} 缺少日期，跳过")
                continue
            difference = abs((trip_date - delivery.delivery_date).days)
            if difference <= self.settings.date_tolerance_days:
                candidates.append((delivery, difference))
        candidates.sort(key=lambda item: (item[1], str(item[0].id)))
        return candidates

    def _resolve_terminal(self, name: Optional[str]) -> Optional[Terminal]:
        if not isinstance(name, str) or not name.strip():
            return None
        terminal = self._terminal_index.get(name.strip().upper()) or \
            self._terminal_index.get(normalize_location_name(name))
        if terminal is None:
            canonical = self.alias_resolver.resolve_terminal_name(name)
            if canonical:
                terminal = self._terminal_index.get(canonical.strip().upper()) or \
                    self._terminal_index.get(normalize_location_name(canonical))
        return terminal

    def _text_signal(self, trip: Trip, delivery: DeliveryRecord) -> Dict[str, Any]:
        """文本信号：四组比较取最高，随后应用别名加分"""
        signal = {'confidence': 0, 'method': None, 'business_match': False, 'location_match': False}
        if not self.settings.enable_text_matching:
            return signal

        comparisons = [
            (trip.start_location, delivery.customer, '_start'),
            (trip.end_location, delivery.customer, '_end'),
            (trip.start_location, delivery.terminal, '_terminal_start'),
            (trip.end_location, delivery.terminal, '_terminal_end'),
        ]
        for trip_text, reference_text, suffix in comparisons:
            result = self.text_matcher.match(trip_text, reference_text, suffix.lstrip('_'))
            # 严格大于：同分保留先出现的比较
            if result.match_confidence > signal['confidence']:
                signal.update(confidence=result.match_confidence, method=result.match_method + suffix)
                # 业务标识/区域引用标志只来自客户名比较
                if suffix in ('_start', '_end'):
                    signal.update(business_match=result.business_match, location_match=result.location_match)

        if self.settings.enable_lookup_boost:
            self._apply_alias_boost(trip, delivery, signal)
        return signal

    def _apply_alias_boost(self, trip: Trip, delivery: DeliveryRecord, signal: Dict[str, Any]):
        resolver = self.alias_resolver
        trip_texts = [text for text in (trip.start_location, trip.end_location) if text]

        customer_canonical = resolver.resolve_business_name(delivery.customer)
        if customer_canonical and any(resolver.resolve_business_name(text) == customer_canonical
                                      for text in trip_texts):
            signal['confidence'] = min(signal['confidence'] + self.settings.business_alias_boost, 100)
            signal['method'] = (signal['method'] or 'alias') + '_alias_boost'

        if delivery.terminal:
            terminal_canonical = (resolver.resolve_terminal_name(delivery.terminal) or delivery.terminal).upper()
            for text in trip_texts:
                resolved = resolver.resolve_terminal_name(text)
                if resolved and resolved.upper() == terminal_canonical:
                    signal['confidence'] = min(signal['confidence'] + self.settings.terminal_alias_boost, 100)
                    signal['method'] = (signal['method'] or 'terminal') + '_terminal_alias'
                    break

    def _geo_signal(self, trip: Trip, delivery: DeliveryRecord) -> Dict[str, Any]:
        """空间信号：起终点分别与候选码头比较，取较高者"""
        signal = {'confidence': 0, 'distance_km': None, 'within_service_area': False, 'trip_point': None}
        if not self.settings.enable_geospatial:
            return signal

        terminal = self._resolve_terminal(delivery.terminal)
        if terminal is None:
            return signal

        for trip_point, latitude, longitude in (('start', trip.start_latitude, trip.start_longitude),
                                                ('end', trip.end_latitude, trip.end_longitude)):
            matches = self.geo_matcher.find_terminals_for_point(latitude, longitude,
                                                                self.settings.max_distance_km)
            match: Optional[TerminalMatch] = next(
                (item for item in matches if item.reference.id == terminal.id), None)
            if match is not None and match.confidence_score > signal['confidence']:
                signal.update(confidence=match.confidence_score,
                              distance_km=round(match.distance_km, 2),
                              within_service_area=match.within_service_area,
                              trip_point=trip_point)
        return signal

    def score_pair(self, trip: Trip, delivery: DeliveryRecord, date_difference_days: int) -> Correlation:
        """为一对（行程, 交付记录）计算完整的关联结果（不做阈值过滤）"""
        settings = self.settings
        text = self._text_signal(trip, delivery)
        geo = self._geo_signal(trip, delivery)
        temporal = temporal_confidence(date_difference_days, settings) if settings.enable_temporal else 0

        fusion = fuse_signals(text['confidence'], geo['confidence'], temporal, settings)
        overall = fusion.score
        flags = risk_flags(text['confidence'], geo['confidence'], date_difference_days,
                           geo['distance_km'], settings)

        methods = []
        if text['confidence'] > 0:
            methods.append('text_matching')
        if geo['confidence'] > 0:
            methods.append('geospatial')
        if temporal > 0:
            methods.append('temporal')

        return Correlation(
            id=str(uuid.uuid4()),
            trip_id=trip.id,
            delivery_id=delivery.id,
            trip_date=trip.trip_date,
            delivery_date=delivery.delivery_date,
            customer_name=delivery.customer,
            terminal_name=delivery.terminal,
            overall_confidence=overall,
            confidence_breakdown={
                'text_confidence': text['confidence'],
                'geo_confidence': geo['confidence'],
                'temporal_confidence': temporal,
                'weighted_score': overall,
                'fusion_rule': fusion.rule_name,
                'fusion_text_input': fusion.text_input,
                'fusion_geo_input': fusion.geo_input,
                **{name: getattr(settings, name) for name in FUSION_PARAMETERS},
            },
            match_methods=methods,
            match_quality=assess_quality(text['confidence'], geo['confidence'], temporal),
            text_confidence=text['confidence'],
            text_match_method=text['method'],
            business_identifier_match=text['business_match'],
            location_reference_match=text['location_match'],
            geo_confidence=geo['confidence'],
            terminal_distance_km=geo['distance_km'],
            within_service_area=geo['within_service_area'],
            matching_trip_point=geo['trip_point'],
            temporal_confidence=temporal,
            date_difference_days=date_difference_days,
            quality_flags=flags,
            requires_manual_review=requires_review(overall, date_difference_days, geo['distance_km'],
                                                   flags, settings),
            delivery_volume_litres=delivery.volume_litres,
        )

    def correlate_trip(self, trip: Trip, deliveries: List[DeliveryRecord]) -> List[Correlation]:
        """
        关联单个行程与交付记录

        Args:
            trip: 行程
            deliveries: 交付记录

        Returns:
            达到最低置信度的关联列表（按日期差排序）
        """
        correlations = []
        for delivery, difference in self.candidate_deliveries(trip, deliveries):
            correlation = self.score_pair(trip, delivery, difference)
            if correlation.overall_confidence >= self.settings.min_confidence:
                correlations.append(correlation)

        self._flag_ambiguous(correlations)
        return correlations

    @staticmethod
    def _flag_ambiguous(correlations: List[Correlation]):
        """最佳候选同分时标记为歧义并要求人工复核"""
        if len(correlations) < 2:
            return
        best = max(correlation.overall_confidence for correlation in correlations)
        tied = [correlation for correlation in correlations if correlation.overall_confidence == best]
        if len(tied) < 2:
            return
        for correlation in tied:
            if 'ambiguous_match' not in correlation.quality_flags:
                correlation.quality_flags.append('ambiguous_match')
            correlation.requires_manual_review = True

    def correlate_trips(self, trips: List[Trip], deliveries: List[DeliveryRecord],
                        start_date: Optional[date] = None, end_date: Optional[date] = None,
                        n_jobs: Optional[int] = None) -> CorrelationRun:
        """
        批量关联日期范围内的行程

        Args:
            trips: 行程
            deliveries: 交付记录
            start_date: 起始日期（含）
            end_date: 截止日期（含）
            n_jobs: 并行任务数

        Returns:
            CorrelationRun
        """
        if start_date and end_date and start_date > end_date:
            raise ConfigurationError(f"日期范围非法: {start_date} > {end_date}", 'date range')

        selected = [trip for trip in trips
                    if (start_date is None or trip.trip_date >= start_date)
                    and (end_date is None or trip.trip_date <= end_date)
                    and (trip.start_location or trip.end_location or trip.has_start_point or trip.has_end_point)]
        logger.info(f"批量关联: 行程 {len(selected)}/{len(trips)}，交付记录 {len(deliveries)}，"
                    f"容差 {self.settings.date_tolerance_days}天，最低置信度 {self.settings.min_confidence}")

        processor = ParallelProcessor(n_jobs=n_jobs)
        per_trip = processor.batch_process(selected, lambda trip: self.correlate_trip(trip, deliveries),
                                           desc="行程关联")
        correlations = [correlation for trip_correlations in per_trip for correlation in trip_correlations]

        logger.info(f"批量关联完成: 生成 {len(correlations)} 条关联，"
                    f"需复核 {sum(1 for c in correlations if c.requires_manual_review)} 条")
        return CorrelationRun(correlations, start_date, end_date, len(selected))

"""
Test suite for the output repository
File: tests/test_db_handler.py
"""
import uuid
from datetime import date

import pytest

from core.exceptions import ConfigurationError
from core.models import Correlation, DiscoveredPOI, RoutePattern, MatchQuality, POIStatus
from utils.db_handler import DatabaseHandler


def make_correlation(trip_id, trip_date, confidence=80):
    return Correlation(
        id=str(uuid.uuid4()), trip_id=trip_id, delivery_id=f'D-{trip_id}', trip_date=trip_date,
        delivery_date=trip_date, customer_name='BHP', terminal_name='Kewdale',
        overall_confidence=confidence,
        confidence_breakdown={'text_confidence': 95, 'geo_confidence': 0, 'temporal_confidence': 100,
                              'weighted_score': confidence, 'fusion_rule': 'text_high'},
        match_methods=['text_matching', 'temporal'], match_quality=MatchQuality.FAIR,
        text_confidence=95, quality_flags=['ambiguous_match'], requires_manual_review=True,
    )


def make_pattern(start_id, end_id):
    return RoutePattern(
        id=str(uuid.uuid4()), route_hash=f'{start_id}{end_id}', start_poi_id=start_id, end_poi_id=end_id,
        start_location=start_id, end_location=end_id, route_type='delivery', data_quality_tier='bronze',
        trip_count=12, average_distance_km=62.0, min_distance_km=60.0, max_distance_km=64.0,
        average_travel_time_hours=1.1, best_time_hours=1.0, worst_time_hours=1.2, time_variability=0.1,
        efficiency_rating=95, most_common_vehicle='1ABC123', most_common_driver=None,
        first_trip_date=date(2024, 3, 1), last_trip_date=date(2024, 3, 9), straight_line_distance_km=53.3,
        route_deviation_ratio=116.3, avg_gps_accuracy_meters=30.0, avg_loading_time_hours=1.0,
        avg_delivery_time_hours=0.5, start_poi_confidence=90, end_poi_confidence=85,
    )


class TestDatabaseHandler:
    """SQLite上的输出仓库"""

    @pytest.fixture(autouse=True)
    def _handler(self, tmp_path):
        self.handler = DatabaseHandler({'url': f"sqlite:///{tmp_path / 'fleet.db'}"})
        self.handler.connect()
        self.handler.create_tables()
        yield
        self.handler.disconnect()

    def test_not_connected(self):
        with pytest.raises(ConfigurationError):
            DatabaseHandler({'url': 'sqlite://'}).replace_correlations([])

    def test_connection_failure_is_fatal(self):
        handler = DatabaseHandler({'url': 'sqlite:////nonexistent-dir/missing/fleet.db'})
        with pytest.raises(ConfigurationError) as exc_info:
            handler.connect()
        assert 'output repository' in str(exc_info.value)

    def test_replace_is_idempotent(self):
        correlations = [make_correlation('t1', date(2024, 3, 5)), make_correlation('t2', date(2024, 3, 6))]
        self.handler.replace_correlations(correlations, date(2024, 3, 1), date(2024, 3, 31))
        self.handler.replace_correlations(correlations, date(2024, 3, 1), date(2024, 3, 31))

        df = self.handler.fetch_correlations()
        assert len(df) == 2
        assert sorted(df['trip_id']) == ['t1', 't2']

    def test_replace_only_touches_range(self):
        self.handler.replace_correlations([make_correlation('april', date(2024, 4, 5))],
                                          date(2024, 4, 1), date(2024, 4, 30))
        self.handler.replace_correlations([make_correlation('t1', date(2024, 3, 5))],
                                          date(2024, 3, 1), date(2024, 3, 31))
        self.handler.replace_correlations([], date(2024, 3, 1), date(2024, 3, 31))

        df = self.handler.fetch_correlations()
        assert list(df['trip_id']) == ['april']

    def test_out_of_range_correlation_rejected(self):
        self.handler.replace_correlations([make_correlation('t1', date(2024, 3, 5))],
                                          date(2024, 3, 1), date(2024, 3, 31))
        with pytest.raises(ValueError):
            self.handler.replace_correlations([make_correlation('april', date(2024, 4, 5))],
                                              date(2024, 3, 1), date(2024, 3, 31))
        assert len(self.handler.fetch_correlations()) == 1

    def test_json_columns_round_trip(self):
        self.handler.replace_correlations([make_correlation('t1', date(2024, 3, 5))])
        row = self.handler.fetch_correlations(date(2024, 3, 5), date(2024, 3, 5)).iloc[0]
        assert row['confidence_breakdown']['fusion_rule'] == 'text_high'
        assert row['match_methods'] == ['text_matching', 'temporal']
        assert row['quality_flags'] == ['ambiguous_match']
        assert row['match_quality'] == 'fair'

    def test_save_discovered_pois(self):
        discovered = DiscoveredPOI(id='p1', centroid_latitude=-31.9, centroid_longitude=115.8, trip_count=10)
        classified = DiscoveredPOI(id='p2', centroid_latitude=-31.8, centroid_longitude=115.9, trip_count=40,
                                   classification_status=POIStatus.CLASSIFIED)
        self.handler.save_discovered_pois([discovered, classified])

        fresh = DiscoveredPOI(id='p3', centroid_latitude=-31.7, centroid_longitude=116.0, trip_count=11)
        self.handler.save_discovered_pois([fresh], clear_existing=True)

        assert sorted(self.handler.fetch_discovered_pois()['id']) == ['p2', 'p3']
        assert list(self.handler.fetch_discovered_pois('classified')['id']) == ['p2']

    def test_save_discovered_pois_overwrites_by_id(self):
        poi = DiscoveredPOI(id='p1', centroid_latitude=-31.9, centroid_longitude=115.8, trip_count=10)
        self.handler.save_discovered_pois([poi])
        poi.trip_count = 14
        self.handler.save_discovered_pois([poi])

        df = self.handler.fetch_discovered_pois()
        assert len(df) == 1
        assert df.iloc[0]['trip_count'] == 14

    def test_replace_route_patterns(self):
        self.handler.replace_route_patterns([make_pattern('A', 'B'), make_pattern('B', 'A')])
        self.handler.replace_route_patterns([make_pattern('A', 'B')])

        df = self.handler.fetch_route_patterns()
        assert len(df) == 1
        assert df.iloc[0]['start_poi_id'] == 'A'

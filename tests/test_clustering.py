"""
Test suite for POI discovery
File: tests/test_clustering.py
"""
import numpy as np
import pytest

from conftest import make_trip
from core.clustering import (PoiDiscovery, spherical_centroid, gps_accuracy_meters, poi_confidence,
                             summarize_pois)
from core.exceptions import ConfigurationError
from core.models import DiscoveredPOI, POIStatus

DEPOT_A = (-31.90, 115.85)
DEPOT_A_NEAR = (-31.901, 115.851)


class TestClusterStatistics:
    """聚类统计函数"""

    def test_spherical_centroid(self):
        lat, lon = spherical_centroid(np.array([0.0, 0.0]), np.array([10.0, 20.0]))
        assert lat == pytest.approx(0.0, abs=1e-9)
        assert lon == pytest.approx(15.0)

    def test_single_point_accuracy_is_zero(self):
        assert gps_accuracy_meters(np.array([-31.9]), np.array([115.85])) == 0.0

    def test_accuracy_uses_sample_std(self):
        accuracy = gps_accuracy_meters(np.array([-31.90, -31.901]), np.array([115.85, 115.851]))
        assert accuracy == pytest.approx(np.std([0.0, 0.001], ddof=1) * 111000)

    @pytest.mark.parametrize('trip_count,accuracy,expected', [
        (101, 10, 100),
        (51, 10, 90),
        (21, 120, 60),
        (10, 60, 60),
        (10, 40, 70),
        (2, 500, 50),
    ])
    def test_poi_confidence(self, trip_count, accuracy, expected):
        assert poi_confidence(trip_count, accuracy) == expected

    def test_confidence_monotonic(self):
        assert poi_confidence(60, 40) > poi_confidence(30, 40)
        assert poi_confidence(30, 40) > poi_confidence(30, 80)


class TestPoiDiscovery:
    """起终点聚类与合并"""

    @pytest.fixture(autouse=True)
    def _discovery(self, serial_processor):
        self.discovery = PoiDiscovery(processor=serial_processor)

    def test_two_nearby_start_points_form_one_poi(self):
        trips = [make_trip('t1', start=DEPOT_A), make_trip('t2', start=DEPOT_A_NEAR)]
        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30)

        assert result.poi_count == 1
        poi = result.active_pois[0]
        assert poi.trip_count == 2
        assert poi.start_point_count == 2
        assert poi.end_point_count == 0
        assert poi.suggested_name == 'Start Point Cluster #1 (2 trips)'
        assert poi.centroid_latitude == pytest.approx(-31.9005, abs=1e-4)
        assert poi.centroid_longitude == pytest.approx(115.8505, abs=1e-4)
        assert poi.confidence_score == 60
        assert poi.classification_status == POIStatus.DISCOVERED
        assert result.start_poi_count == 1
        assert result.end_poi_count == 0
        assert result.total_trips_analyzed == 2

    def test_short_idle_trips_are_ignored(self):
        trips = [make_trip('t1', start=DEPOT_A, idle_hours=0.25),
                 make_trip('t2', start=DEPOT_A_NEAR, idle_hours=0.25)]
        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30)
        assert result.poi_count == 0
        assert result.total_trips_analyzed == 0

    def test_idle_threshold_is_inclusive(self):
        trips = [make_trip('t1', start=DEPOT_A, idle_hours=0.5),
                 make_trip('t2', start=DEPOT_A_NEAR, idle_hours=0.5)]
        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30)
        assert result.poi_count == 1

    def test_isolated_points_yield_nothing(self):
        trips = [make_trip('t1', start=DEPOT_A), make_trip('t2', start=(-30.75, 121.47))]
        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30)
        assert result.poi_count == 0
        assert result.total_trips_analyzed == 2

    def test_missing_coordinates_skipped(self):
        trips = [make_trip('t1', start=DEPOT_A), make_trip('t2'), make_trip('t3', start=DEPOT_A_NEAR)]
        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30)
        assert result.active_pois[0].trip_count == 2

    @pytest.mark.parametrize('kwargs,parameter', [
        ({'epsilon_meters': 0}, 'epsilon_meters'),
        ({'epsilon_meters': -5}, 'epsilon_meters'),
        ({'min_points': 0}, 'min_points'),
        ({'min_idle_minutes': -1}, 'min_idle_minutes'),
    ])
    def test_invalid_parameters(self, kwargs, parameter):
        params = {'epsilon_meters': 500, 'min_points': 2, 'min_idle_minutes': 30}
        params.update(kwargs)
        with pytest.raises(ConfigurationError) as exc_info:
            self.discovery.discover([make_trip('t1', start=DEPOT_A)], **params)
        assert parameter in str(exc_info.value)

    def test_start_and_end_clusters_merge(self):
        trips = [
            make_trip('t1', start=DEPOT_A, end=(-28.77, 114.61)),
            make_trip('t2', start=DEPOT_A_NEAR, end=(-33.33, 115.64)),
            make_trip('t3', start=(-30.75, 121.47), end=(-31.9002, 115.8502)),
            make_trip('t4', start=(-20.31, 118.58), end=(-31.9008, 115.8508)),
        ]
        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30)

        assert result.start_poi_count == 1
        assert result.end_poi_count == 1
        assert result.merged_count == 1
        assert result.poi_count == 1

        survivor = result.active_pois[0]
        assert survivor.trip_count == 4
        assert survivor.start_point_count == 2
        assert survivor.end_point_count == 2
        assert survivor.suggested_name == 'Mixed Use Location (4 trips)'

        absorbed = [poi for poi in result.new_pois if poi.classification_status == POIStatus.MERGED]
        assert len(absorbed) == 1
        assert absorbed[0].merged_into_id == survivor.id
        assert absorbed[0].cluster_id >= 10000

    def test_clear_existing_only_removes_discovered(self):
        existing = [
            DiscoveredPOI(id='old-discovered', centroid_latitude=-32.0, centroid_longitude=116.0, trip_count=12),
            DiscoveredPOI(id='old-classified', centroid_latitude=-32.1, centroid_longitude=116.1, trip_count=40,
                          classification_status=POIStatus.CLASSIFIED),
        ]
        trips = [make_trip('t1', start=DEPOT_A), make_trip('t2', start=DEPOT_A_NEAR)]

        result = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30,
                                         clear_existing=True, existing_pois=existing)
        ids = {poi.id for poi in result.pois}
        assert 'old-classified' in ids
        assert 'old-discovered' not in ids
        assert len(result.pois) == 2

        kept = self.discovery.discover(trips, epsilon_meters=500, min_points=2, min_idle_minutes=30,
                                       clear_existing=False, existing_pois=existing)
        assert len(kept.pois) == 3

    def test_summary(self):
        trips = [make_trip('t1', start=DEPOT_A), make_trip('t2', start=DEPOT_A_NEAR)]
        summary = self.discovery.discover(trips, epsilon_meters=500, min_points=2,
                                          min_idle_minutes=30).to_summary()
        assert summary['poi_count'] == 1
        assert summary['merged_count'] == 0
        assert summary['message']


def test_summarize_pois():
    pois = [
        DiscoveredPOI(id='a', centroid_latitude=-31.9, centroid_longitude=115.8, trip_count=3),
        DiscoveredPOI(id='b', centroid_latitude=-31.9, centroid_longitude=115.8, trip_count=9),
    ]
    df = summarize_pois(pois)
    assert list(df['id']) == ['b', 'a']
    assert summarize_pois([]).empty

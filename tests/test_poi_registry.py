"""
Test suite for POI registry state transitions
File: tests/test_poi_registry.py
"""
import pytest

from core.exceptions import InvalidTransitionError
from core.models import DiscoveredPOI, POIStatus, POIType
from core.poi_registry import PoiRegistry


def make_poi(poi_id, lat=-31.90, lon=115.85, trip_count=20, confidence=80,
             status=POIStatus.DISCOVERED, radius=1.0):
    return DiscoveredPOI(id=poi_id, centroid_latitude=lat, centroid_longitude=lon,
                         trip_count=trip_count, start_point_count=trip_count,
                         total_idle_time_hours=trip_count * 0.5, avg_idle_time_hours=0.5,
                         confidence_score=confidence, classification_status=status,
                         service_radius_km=radius)


class TestPoiRegistry:
    """POI注册表"""

    def setup_method(self):
        self.registry = PoiRegistry([
            make_poi('p1'),
            make_poi('p2', lat=-31.95, trip_count=10),
            make_poi('p3', status=POIStatus.CLASSIFIED),
            make_poi('p4', status=POIStatus.MERGED),
        ])

    def test_classify_discovered(self):
        poi = self.registry.classify('p1', POIType.TERMINAL, actual_name='Kewdale Terminal',
                                     service_radius_km=2.5, matched_terminal_id='T1')
        assert poi.classification_status == POIStatus.CLASSIFIED
        assert poi.poi_type == POIType.TERMINAL
        assert poi.display_name == 'Kewdale Terminal'
        assert poi.service_radius_km == 2.5
        assert poi.matched_terminal_id == 'T1'

    def test_reclassify_classified(self):
        poi = self.registry.classify('p3', 'customer', matched_customer_id='C9')
        assert poi.poi_type == POIType.CUSTOMER
        assert poi.matched_customer_id == 'C9'

    def test_merged_is_terminal_state(self):
        with pytest.raises(InvalidTransitionError):
            self.registry.classify('p4', POIType.DEPOT)

    def test_invalid_radius(self):
        with pytest.raises(ValueError):
            self.registry.classify('p1', POIType.DEPOT, service_radius_km=0)

    def test_unknown_poi(self):
        with pytest.raises(KeyError):
            self.registry.get('missing')

    def test_merge(self):
        survivor = self.registry.merge('p2', 'p1')
        absorbed = self.registry.get('p2')

        assert absorbed.classification_status == POIStatus.MERGED
        assert absorbed.merged_into_id == 'p1'
        assert survivor.trip_count == 30
        assert survivor.start_point_count == 30
        assert survivor.total_idle_time_hours == pytest.approx(15.0)
        assert survivor.avg_idle_time_hours == pytest.approx(0.5)

    def test_merge_rules(self):
        with pytest.raises(ValueError):
            self.registry.merge('p1', 'p1')
        with pytest.raises(InvalidTransitionError):
            self.registry.merge('p3', 'p1')
        with pytest.raises(InvalidTransitionError):
            self.registry.merge('p1', 'p4')

    def test_pois_are_never_removed(self):
        self.registry.merge('p2', 'p1')
        assert len(self.registry) == 4

    def test_classified_pois_filter_confidence(self):
        self.registry.add(make_poi('p5', confidence=60, status=POIStatus.CLASSIFIED))
        assert [poi.id for poi in self.registry.classified_pois(70)] == ['p3']
        assert {poi.id for poi in self.registry.classified_pois(50)} == {'p3', 'p5'}

    def test_nearest_classified_poi(self):
        # 约550米，在1公里服务半径内
        assert self.registry.nearest_classified_poi(-31.905, 115.85).id == 'p3'
        # 约5.5公里，超出服务半径
        assert self.registry.nearest_classified_poi(-31.95, 115.85) is None
        assert self.registry.nearest_classified_poi(None, 115.85) is None

    def test_statistics(self):
        stats = self.registry.statistics()
        assert stats['total'] == 4
        assert stats['by_status'] == {'discovered': 2, 'classified': 1, 'merged': 1}
        assert stats['average_confidence'] == 80.0
        assert PoiRegistry().statistics()['total'] == 0

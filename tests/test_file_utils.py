"""
Test suite for CSV feed loading
File: tests/test_file_utils.py
"""
from datetime import date, datetime

import pandas as pd
import pytest

from core.exceptions import ConfigurationError, InputDefectError
from core.models import POIStatus, POIType
from utils.file_utils import FileUtils, parse_date, parse_datetime


def write_csv(path, rows):
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


class TestParsing:
    """日期解析"""

    @pytest.mark.parametrize('value', ['2024-03-05', '05/03/2024', '2024/03/05',
                                       date(2024, 3, 5), datetime(2024, 3, 5, 9, 30)])
    def test_parse_date(self, value):
        assert parse_date(value) == date(2024, 3, 5)

    @pytest.mark.parametrize('value', [None, '', 'not a date'])
    def test_parse_date_defect(self, value):
        with pytest.raises(InputDefectError):
            parse_date(value)

    def test_parse_datetime(self):
        assert parse_datetime('2024-03-05 08:15:00') == datetime(2024, 3, 5, 8, 15)
        with pytest.raises(InputDefectError):
            parse_datetime('garbage')


class TestFeedLoading:
    """数据源读取"""

    def test_missing_required_feed_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            FileUtils.load_trips(tmp_path / 'trips.csv')
        assert 'trip feed' in str(exc_info.value)

    def test_optional_feeds(self, tmp_path):
        assert FileUtils.load_customers(tmp_path / 'customers.csv') == []
        assert FileUtils.load_pois(tmp_path / 'pois.csv') == []
        assert FileUtils.load_aliases(tmp_path / 'business_aliases.csv') is None

    def test_load_trips_skips_bad_rows(self, tmp_path):
        path = write_csv(tmp_path / 'trips.csv', [
            {'id': 't1', 'vehicle_registration': '1ABC123', 'start_time': '2024-03-05 08:00:00',
             'end_time': '2024-03-05 12:00:00', 'start_latitude': '-31.98', 'start_longitude': '115.97',
             'end_latitude': '', 'end_longitude': '', 'idle_time_hours': '0.75',
             'start_location': 'BHP Kewdale Depot', 'end_location': ''},
            {'id': 't2', 'vehicle_registration': '1ABC123', 'start_time': 'not a time',
             'end_time': '', 'start_latitude': '', 'start_longitude': '', 'end_latitude': '',
             'end_longitude': '', 'idle_time_hours': '', 'start_location': '', 'end_location': ''},
        ])
        trips = FileUtils.load_trips(path)

        assert len(trips) == 1
        trip = trips[0]
        assert trip.trip_date == date(2024, 3, 5)
        assert trip.has_start_point is True
        assert trip.has_end_point is False
        assert trip.idle_time_hours == 0.75
        assert trip.start_location == 'BHP Kewdale Depot'
        assert trip.end_location is None

    def test_load_terminals_with_service_area(self, tmp_path):
        path = write_csv(tmp_path / 'terminals.csv', [
            {'id': 'T1', 'name': 'Kewdale', 'latitude': '-31.98', 'longitude': '115.97',
             'service_radius_km': '5', 'carrier_primary': 'SMP', 'active': 'true',
             'service_area': 'POLYGON ((115.9 -32.1, 116.1 -32.1, 116.1 -31.9, 115.9 -31.9, 115.9 -32.1))'},
            {'id': 'T2', 'name': 'Old Depot', 'latitude': '-31.5', 'longitude': '116.0',
             'service_radius_km': '', 'carrier_primary': '', 'active': 'false', 'service_area': ''},
            {'id': 'T3', 'name': 'Broken', 'latitude': '-31.5', 'longitude': '116.0',
             'service_radius_km': '', 'carrier_primary': '', 'active': 'true', 'service_area': 'POLYGON ((1 2'},
            {'id': 'T4', 'name': 'No Coordinates', 'latitude': '', 'longitude': '',
             'service_radius_km': '', 'carrier_primary': '', 'active': '', 'service_area': ''},
        ])
        terminals = FileUtils.load_terminals(path)

        assert [t.id for t in terminals] == ['T1', 'T2']
        assert terminals[0].service_area is not None
        assert terminals[0].service_area.bounds == (115.9, -32.1, 116.1, -31.9)
        assert terminals[1].active is False
        assert terminals[1].service_radius_km == 10.0

    def test_load_deliveries(self, tmp_path):
        path = write_csv(tmp_path / 'deliveries.csv', [
            {'id': 'D1', 'customer': 'BHP', 'terminal': 'Kewdale', 'delivery_date': '06/03/2024',
             'volume_litres': '32000', 'carrier': 'SMP', 'bill_of_lading': 'BOL-1'},
            {'id': 'D2', 'customer': 'BHP', 'terminal': 'Kewdale', 'delivery_date': 'unknown',
             'volume_litres': '', 'carrier': '', 'bill_of_lading': ''},
            {'id': 'D3', 'customer': '', 'terminal': 'Kewdale', 'delivery_date': '2024-03-06',
             'volume_litres': '', 'carrier': '', 'bill_of_lading': ''},
        ])
        deliveries = FileUtils.load_deliveries(path)

        assert len(deliveries) == 1
        assert deliveries[0].delivery_date == date(2024, 3, 6)
        assert deliveries[0].volume_litres == 32000.0
        assert deliveries[0].bill_of_lading == 'BOL-1'

    def test_load_aliases(self, tmp_path):
        path = write_csv(tmp_path / 'business_aliases.csv', [
            {'alias_name': 'Big Mine', 'canonical_name': 'BIGCO', 'confidence_boost': '12'},
            {'alias_name': 'Small Mine', 'canonical_name': 'SMALLCO', 'confidence_boost': ''},
        ])
        rows = FileUtils.load_aliases(path)
        assert rows[0] == {'alias_name': 'Big Mine', 'canonical_name': 'BIGCO', 'confidence_boost': 12}
        assert rows[1]['confidence_boost'] is None

    def test_load_pois(self, tmp_path):
        path = write_csv(tmp_path / 'pois.csv', [
            {'id': 'A', 'centroid_latitude': '-31.98', 'centroid_longitude': '115.97', 'trip_count': '30',
             'confidence_score': '90', 'classification_status': 'classified', 'poi_type': 'terminal',
             'actual_name': 'Kewdale Terminal', 'service_radius_km': '2'},
            {'id': 'B', 'centroid_latitude': '-31.5', 'centroid_longitude': '116.0', 'trip_count': '5',
             'confidence_score': '', 'classification_status': 'archived', 'poi_type': '',
             'actual_name': '', 'service_radius_km': ''},
        ])
        pois = FileUtils.load_pois(path)

        assert len(pois) == 1
        assert pois[0].classification_status == POIStatus.CLASSIFIED
        assert pois[0].poi_type == POIType.TERMINAL
        assert pois[0].service_radius_km == 2.0
        assert pois[0].display_name == 'Kewdale Terminal'


class TestOutputFiles:
    """结果输出"""

    def test_save_dataframe(self, tmp_path):
        df = pd.DataFrame([{'a': 1}])
        FileUtils.save_dataframe(df, tmp_path / 'out.csv')
        assert (tmp_path / 'out.csv').exists()
        with pytest.raises(ValueError):
            FileUtils.save_dataframe(df, tmp_path / 'out.txt')

    def test_write_json(self, tmp_path):
        FileUtils.write_json({'day': date(2024, 3, 5), 'name': '码头'}, tmp_path / 'out.json')
        assert '2024-03-05' in (tmp_path / 'out.json').read_text(encoding='utf-8')

    def test_ensure_directory(self, tmp_path):
        path = FileUtils.ensure_directory(tmp_path / 'a' / 'b')
        assert path.is_dir()

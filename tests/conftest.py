"""
公共测试夹具
File: tests/conftest.py
"""
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

# 仓库根目录加入导入路径
sys.path.append(str(Path(__file__).parent.parent))

from core.models import Trip, Terminal, DeliveryRecord
from utils.parallel_processor import ParallelProcessor

KEWDALE = (-31.98, 115.97)
PORT_HEDLAND = (-20.31, 118.58)


def make_trip(trip_id, start=None, end=None, idle_hours=0.75, day=date(2024, 3, 5), **kwargs):
    """构造行程：start/end 为 (纬度, 经度) 或 None"""
    start_lat, start_lon = start if start else (None, None)
    end_lat, end_lon = end if end else (None, None)
    return Trip(
        id=trip_id,
        vehicle_registration=kwargs.pop('vehicle_registration', '1ABC123'),
        start_time=datetime(day.year, day.month, day.day, 8, 0),
        end_time=datetime(day.year, day.month, day.day, 12, 0),
        start_latitude=start_lat,
        start_longitude=start_lon,
        end_latitude=end_lat,
        end_longitude=end_lon,
        idle_time_hours=idle_hours,
        **kwargs
    )


@pytest.fixture
def serial_processor():
    return ParallelProcessor(n_jobs=1)


@pytest.fixture
def terminals():
    return [
        Terminal(id='T1', name='Kewdale', latitude=KEWDALE[0], longitude=KEWDALE[1],
                 service_radius_km=5.0, carrier_primary='SMP'),
        Terminal(id='T2', name='Port Hedland', latitude=PORT_HEDLAND[0], longitude=PORT_HEDLAND[1],
                 service_radius_km=5.0, carrier_primary='Combined'),
    ]


@pytest.fixture
def deliveries():
    return [
        DeliveryRecord(id='D1', customer='BHP', terminal='Kewdale',
                       delivery_date=date(2024, 3, 6), volume_litres=32000.0, carrier='SMP'),
        DeliveryRecord(id='D2', customer='Other Co', terminal='Port Hedland',
                       delivery_date=date(2024, 3, 5), volume_litres=18000.0, carrier='SMP'),
    ]

from __future__ import annotations

import json

import pytest


def square(lon: float, lat: float, size: float = 1.0) -> dict:
    return {
        'type': 'Polygon',
        'coordinates': [[
            [lon, lat],
            [lon + size, lat],
            [lon + size, lat + size],
            [lon, lat + size],
            [lon, lat],
        ]],
    }


@pytest.fixture
def geojson_data() -> dict:
    """Three square regions named A, B and C."""
    return {
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'properties': {'name': name, 'pop': 1000 * i}, 'geometry': square(i, 0)}
            for i, name in enumerate(['A', 'B', 'C'])
        ],
    }


@pytest.fixture
def geojson_file(tmp_path, geojson_data):
    path = tmp_path / 'regions.geojson'
    path.write_text(json.dumps(geojson_data), encoding='utf-8')
    return path


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / 'values.csv'
    path.write_text('country,life_exp,rank\nA,10,2\nC,90,1\nZ,55,3\n', encoding='utf-8')
    return path

"""Tests for the GeoJSON and CSV loaders (network replaced by monkeypatch)."""

from __future__ import annotations

import json

import pytest
import requests

import geo_loaders
from geo_loaders import load_geojson, read_attribute_table, read_text_source, regions_from_geojson


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.content = text.encode('utf-8')
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


# ── Sources ───────────────────────────────────────────────────────────────

class TestReadTextSource:
    def test_reads_local_file(self, tmp_path):
        path = tmp_path / 'a.txt'
        path.write_text('hello', encoding='utf-8')
        assert read_text_source(path) == 'hello'
        assert read_text_source(str(path)) == 'hello'

    def test_downloads_url(self, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse('remote')

        monkeypatch.setattr(geo_loaders.requests, 'get', fake_get)
        assert read_text_source('https://example.org/data.csv') == 'remote'
        assert calls == [('https://example.org/data.csv', geo_loaders.REQUEST_TIMEOUT)]

    def test_http_errors_propagate(self, monkeypatch):
        monkeypatch.setattr(geo_loaders.requests, 'get', lambda url, timeout: FakeResponse('', 404))
        with pytest.raises(requests.exceptions.HTTPError):
            read_text_source('https://example.org/missing.csv')

    def test_missing_file_propagates(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_text_source(tmp_path / 'nope.csv')


# ── GeoJSON ───────────────────────────────────────────────────────────────

class TestGeoJson:
    def test_load_feature_collection(self, geojson_file):
        data = load_geojson(geojson_file)
        assert len(data['features']) == 3

    def test_rejects_non_feature_collection(self, tmp_path):
        path = tmp_path / 'point.geojson'
        path.write_text(json.dumps({'type': 'Point', 'coordinates': [0, 0]}), encoding='utf-8')
        with pytest.raises(ValueError):
            load_geojson(path)

    def test_malformed_json_propagates(self, tmp_path):
        path = tmp_path / 'broken.geojson'
        path.write_text('{"type": ', encoding='utf-8')
        with pytest.raises(json.JSONDecodeError):
            load_geojson(path)

    def test_regions_keep_file_order(self, geojson_data):
        regions = regions_from_geojson(geojson_data, 'name')
        assert [r.id for r in regions] == ['A', 'B', 'C']
        assert regions[1].geometry == geojson_data['features'][1]['geometry']
        assert regions[2].properties['pop'] == 2000

    def test_ids_are_strings(self):
        data = {'type': 'FeatureCollection', 'features': [
            {'type': 'Feature', 'properties': {'fips': 6}, 'geometry': None},
        ]}
        assert regions_from_geojson(data, 'fips')[0].id == '6'

    def test_falls_back_to_feature_id(self):
        data = {'type': 'FeatureCollection', 'features': [
            {'type': 'Feature', 'id': 'CA', 'properties': {}, 'geometry': None},
        ]}
        assert regions_from_geojson(data, 'name')[0].id == 'CA'

    def test_missing_id_warns(self):
        data = {'type': 'FeatureCollection', 'features': [
            {'type': 'Feature', 'properties': None, 'geometry': None},
        ]}
        with pytest.warns(UserWarning):
            regions = regions_from_geojson(data, 'name')
        assert regions[0].id == ''


# ── Attribute table ───────────────────────────────────────────────────────

class TestAttributeTable:
    def test_key_read_as_text(self, tmp_path):
        path = tmp_path / 'fips.csv'
        path.write_text('fips,value\n06,1.5\n 48 ,2\n', encoding='utf-8')
        df = read_attribute_table(path, 'fips')
        assert df['fips'].tolist() == ['06', '48']
        assert df['value'].tolist() == [1.5, 2.0]

    def test_missing_key_column(self, csv_file):
        with pytest.raises(KeyError):
            read_attribute_table(csv_file, 'region')

    def test_from_url(self, monkeypatch):
        monkeypatch.setattr(
            geo_loaders.requests, 'get',
            lambda url, timeout: FakeResponse('country,value\nA,1\n'),
        )
        df = read_attribute_table('https://example.org/values.csv', 'country')
        assert df.to_dict('records') == [{'country': 'A', 'value': 1}]

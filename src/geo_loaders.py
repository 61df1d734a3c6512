import io
import json
import logging
import warnings
from pathlib import Path
from typing import List, Union

import pandas as pd
import requests

from choropleth import Region

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


def _is_url(source: Union[str, Path]) -> bool:
    return isinstance(source, str) and source.startswith(('http://', 'https://'))


def read_text_source(source: Union[str, Path]) -> str:
    """
    Read a local file or download a URL as text.

    Args:
        source: Local path or http(s) URL

    Returns:
        The decoded text content
    """
    if _is_url(source):
        try:
            response = requests.get(source, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()  # Raise an exception for bad status codes (4xx or 5xx)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error downloading {source}: {e}")
            raise
        return response.content.decode('utf-8')

    return Path(source).read_text(encoding='utf-8')


def load_geojson(source: Union[str, Path]) -> dict:
    """Load a GeoJSON FeatureCollection from a path or URL."""
    try:
        data = json.loads(read_text_source(source))
    except json.JSONDecodeError as e:
        logger.error(f"Could not parse GeoJSON from {source}: {e}")
        raise

    if not isinstance(data, dict) or data.get('type') != 'FeatureCollection':
        raise ValueError(f"{source} is not a GeoJSON FeatureCollection")

    logger.info(f"Loaded {len(data.get('features', []))} features from {source}")
    return data


def regions_from_geojson(data: dict, id_property: str) -> List[Region]:
    """
    Build one Region per feature, keeping the file order.

    The id comes from properties[id_property], falling back to the
    feature's top-level 'id'.
    """
    regions = []
    for position, feature in enumerate(data.get('features', [])):
        properties = feature.get('properties') or {}
        region_id = properties.get(id_property)
        if region_id is None:
            region_id = feature.get('id')
        if region_id is None:
            warnings.warn(f"Feature {position} has no '{id_property}' property or id")
            region_id = ''

        regions.append(Region(
            id=str(region_id),
            geometry=feature.get('geometry'),
            properties=dict(properties),
        ))
    return regions


def read_attribute_table(source: Union[str, Path], key_field: str) -> pd.DataFrame:
    """
    Load a delimited attribute table with the join key kept as text.

    Args:
        source: Path or URL of the CSV file
        key_field: Column holding the join key

    Returns:
        DataFrame with key_field as stripped strings
    """
    try:
        df = pd.read_csv(io.StringIO(read_text_source(source)), dtype={key_field: str})
    except pd.errors.ParserError as e:
        logger.error(f"Error parsing CSV data from {source}: {e}")
        raise

    if key_field not in df.columns:
        raise KeyError(f"Missing join key column: {key_field}")

    df[key_field] = df[key_field].str.strip()
    logger.info(f"Loaded {len(df)} attribute records from {source}")
    return df

"""
Choropleth Maps Module

Builds interactive folium maps from joined region data: a choropleth layer
filled with precomputed colors, optional hover labels and click popups, a
stepped legend, and optional point markers grouped in clusters.

Rendering, tiles, hit-testing and clustering are all handled by folium and
Leaflet; this module only hands them aligned lists of regions and colors.

Example Usage:
    result = create_choropleth_map(
        csv_path='life_expectancy.csv',
        geojson_path='countries.geojson',
        key_field='country',
        value_field='life_exp',
        id_property='name',
        bin_count=5,
        title='Life expectancy (years)'
    )
    result['map'].save('life_expectancy.html')
"""

import logging
import warnings
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

import folium
import pandas as pd
from folium.plugins import MarkerCluster

from choropleth import (
    DEFAULT_RAMP,
    JoinedRegion,
    Palette,
    Region,
    bind,
    count_unmatched,
    fill_colors,
    finite_float,
    fit_palette,
    joined_values,
)
from geo_loaders import load_geojson, read_attribute_table, regions_from_geojson

logger = logging.getLogger(__name__)


class ChoroplethMapBuilder:
    """
    Renders an ordered list of regions as a folium choropleth.

    Fill colors, labels and popups are passed in as lists aligned with the
    regions; nothing is recomputed here.
    """

    TILES = 'CartoDB positron'

    # Default styling for every region polygon
    STYLE = {
        'color': '#555555',      # Border color
        'weight': 0.5,           # Border width
        'fillOpacity': 0.75      # Fill transparency
    }

    # Style applied while the pointer hovers a region
    HIGHLIGHT = {
        'color': '#000000',
        'weight': 2,
        'fillOpacity': 0.9
    }

    TOOLTIP_STYLE = ("background-color: white; color: black; font-family: sans-serif; "
                     "font-size: 12px; padding: 10px;")

    def __init__(self, regions: Sequence[Region], tiles: Optional[str] = None,
                 zoom_start: int = 2, min_zoom: int = 1, max_zoom: int = 10):
        """
        Args:
            regions: Regions in the order fill colors will be supplied
            tiles: Folium tile name, defaults to TILES
            zoom_start: Initial zoom before the map is fitted to the regions
        """
        if not regions:
            raise ValueError("At least one region is required")
        self.regions = list(regions)
        self.tiles = tiles or self.TILES
        self.zoom_start = zoom_start
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom

    def _check_aligned(self, name: str, values: Optional[Sequence]) -> None:
        if values is not None and len(values) != len(self.regions):
            raise ValueError(
                f"{name} has {len(values)} entries but there are {len(self.regions)} regions"
            )

    def feature_collection(self, fill_colors: Sequence[str],
                           labels: Optional[Sequence[str]] = None,
                           popups: Optional[Sequence[str]] = None) -> dict:
        """
        Build the GeoJSON handed to folium, one feature per region in order.

        Each feature gets a positional 'id' so that styling never depends on
        region ids being unique.
        """
        self._check_aligned('fill_colors', fill_colors)
        self._check_aligned('labels', labels)
        self._check_aligned('popups', popups)

        features = []
        for i, region in enumerate(self.regions):
            properties = dict(region.properties)
            properties['region_id'] = region.id
            properties['fill_color'] = fill_colors[i]
            if labels is not None:
                properties['label'] = labels[i] or ''
            if popups is not None:
                properties['popup'] = popups[i] or ''
            features.append({
                'type': 'Feature',
                'id': str(i),
                'properties': properties,
                'geometry': region.geometry,
            })
        return {'type': 'FeatureCollection', 'features': features}

    def create_map(self, fill_colors: Sequence[str], title: str = "Choropleth Map",
                   labels: Optional[Sequence[str]] = None,
                   popups: Optional[Sequence[str]] = None,
                   palette: Optional[Palette] = None,
                   highlight: bool = True) -> folium.Map:
        """
        Generate an interactive choropleth map.

        Args:
            fill_colors: One color per region, same order as the regions
            title: Layer name and legend caption
            labels: Optional hover text per region (HTML allowed)
            popups: Optional click popup text per region (HTML allowed)
            palette: Palette used for fill_colors; adds a stepped legend
            highlight: Whether to emphasize the region under the pointer

        Returns:
            Configured Folium map object ready for display or saving
        """
        collection = self.feature_collection(fill_colors, labels, popups)

        m = folium.Map(tiles=self.tiles, zoom_start=self.zoom_start,
                       min_zoom=self.min_zoom, max_zoom=self.max_zoom)

        style = self.STYLE

        def get_style(feature):
            return dict(style, fillColor=feature['properties']['fill_color'])

        highlight_style = self.HIGHLIGHT
        layer = folium.GeoJson(
            collection,
            name=title,
            style_function=get_style,
            highlight_function=(lambda feature: highlight_style) if highlight else None,
            tooltip=folium.GeoJsonTooltip(
                fields=['label'],
                aliases=[''],
                labels=False,
                sticky=True,
                style=self.TOOLTIP_STYLE,
            ) if labels is not None else None,
            popup=folium.GeoJsonPopup(
                fields=['popup'],
                aliases=[''],
                labels=False,
            ) if popups is not None else None,
        )
        layer.add_to(m)

        bounds = layer.get_bounds()
        if all(v is not None for corner in bounds for v in corner):
            m.fit_bounds(bounds)

        if palette is not None:
            palette.to_colormap(title).add_to(m)

        return m


def _cell_text(row: dict, column: Optional[str]) -> Optional[str]:
    """Text of a row cell, or None when the column is unset or the cell is blank."""
    if not column:
        return None
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def add_markers(m: folium.Map, points: pd.DataFrame, lat_col: str, lon_col: str,
                popup_col: Optional[str] = None, tooltip_col: Optional[str] = None,
                color_col: Optional[str] = None, icon: str = 'info-sign',
                cluster: bool = True, name: str = "Markers") -> folium.Map:
    """
    Add point markers to a map, optionally grouped in a MarkerCluster.

    Args:
        m: Map to draw on
        points: DataFrame with one row per marker
        lat_col: Column with latitudes
        lon_col: Column with longitudes
        popup_col: Column with click popup text
        tooltip_col: Column with hover text
        color_col: Column with folium Icon color names ('red', 'blue', ...)
        icon: Glyphicon name used for every marker
        cluster: Whether nearby markers collapse into clusters

    Returns:
        The same map, for chaining
    """
    container = MarkerCluster(name=name) if cluster else folium.FeatureGroup(name=name)
    container.add_to(m)

    added = 0
    for position, row in enumerate(points.to_dict('records')):
        lat = finite_float(row.get(lat_col))
        lon = finite_float(row.get(lon_col))
        if lat is None or lon is None:
            warnings.warn(f"Skipping marker {position}: missing coordinates")
            continue

        folium.Marker(
            location=[lat, lon],
            popup=_cell_text(row, popup_col),
            tooltip=_cell_text(row, tooltip_col),
            icon=folium.Icon(color=_cell_text(row, color_col) or 'blue', icon=icon),
        ).add_to(container)
        added += 1

    logger.info(f"Added {added} of {len(points)} markers")
    return m


def format_value(value, decimal: int = 1, prefix: str = '') -> str:
    """
    Format a numeric value with abbreviated units.

    Args:
        value: Number to format
        decimal: Digits after the decimal point
        prefix: Text placed before the number (e.g. '$')

    Returns:
        Formatted string (e.g. '1.2M', '$500.0K') or 'No data'
    """
    value = finite_float(value)
    if value is None:
        return "No data"

    sign = '-' if value < 0 else ''
    value = abs(value)

    if value >= 1_000_000_000:
        return f"{sign}{prefix}{value / 1_000_000_000:.{decimal}f}B"
    elif value >= 1_000_000:
        return f"{sign}{prefix}{value / 1_000_000:.{decimal}f}M"
    elif value >= 1_000:
        return f"{sign}{prefix}{value / 1_000:.{decimal}f}K"
    elif value == int(value):
        return f"{sign}{prefix}{int(value)}"
    else:
        return f"{sign}{prefix}{value:.{decimal}f}"


def default_label(joined: JoinedRegion, value_label: str = "Value") -> str:
    """Hover text: region name in bold and its value, or 'No data'."""
    value = joined.value if joined.matched else None
    return f"<b>{joined.id}</b><br>{value_label}: {format_value(value)}"


def create_choropleth_map(csv_path: Union[str, Path], geojson_path: Union[str, Path],
                          key_field: str, value_field: str, id_property: str,
                          bin_count: int = 6, ramp=DEFAULT_RAMP,
                          title: str = "Choropleth Map",
                          label_fn: Optional[Callable[[JoinedRegion], str]] = None,
                          popup_fn: Optional[Callable[[JoinedRegion], str]] = None,
                          tiles: Optional[str] = None) -> Dict:
    """
    Convenience function to create a complete choropleth from files or URLs.

    Runs load -> join -> fit palette -> map colors -> render, with every
    intermediate result passed explicitly.

    Args:
        csv_path: Path or URL of the attribute table
        geojson_path: Path or URL of the region boundaries
        key_field: Column of the attribute table holding the join key
        value_field: Column of the attribute table to color by
        id_property: GeoJSON feature property matched against key_field
        bin_count: Number of palette bins
        ramp: Color list or branca ColorBrewer ramp name
        title: Layer name and legend caption
        label_fn: Builds hover text per joined region, defaults to default_label
        popup_fn: Builds click popup text per joined region

    Returns:
        Dictionary containing:
            'map': Folium map object ready for display/saving
            'joined': JoinedRegion list, one per region
            'palette': The fitted Palette
            'stats': Dictionary with 'min', 'max', 'count', 'matched', 'unmatched'

    Raises:
        EmptyDomainError: if no region matched a numeric value
    """
    records = read_attribute_table(csv_path, key_field)
    regions = regions_from_geojson(load_geojson(geojson_path), id_property)

    joined = bind(regions, records, key_field=key_field, value_field=value_field)
    missing = count_unmatched(joined)
    if missing:
        logger.info(f"{missing} of {len(joined)} regions have no '{key_field}' match in {csv_path}")

    palette = fit_palette(joined_values(joined), bin_count, ramp=ramp)
    colors = fill_colors(palette, joined)

    if label_fn is None:
        label_fn = lambda j: default_label(j, value_field)
    labels = [label_fn(j) for j in joined]
    popups = [popup_fn(j) for j in joined] if popup_fn else None

    builder = ChoroplethMapBuilder(regions, tiles=tiles)
    choropleth_map = builder.create_map(colors, title=title, labels=labels,
                                        popups=popups, palette=palette)

    return {
        'map': choropleth_map,
        'joined': joined,
        'palette': palette,
        'stats': {
            'min': palette.vmin,
            'max': palette.vmax,
            'count': len(joined),
            'matched': len(joined) - missing,
            'unmatched': missing,
        },
    }

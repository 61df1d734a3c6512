"""
Choropleth Binding Module

Joins an attribute table to an ordered list of geographic regions and turns
the joined values into fill colors through a stepped palette.

Key Features:
- Left-outer join by exact key, first matching record wins
- Explicit "no match" sentinel instead of silently filling with zero
- Equal-width stepped palettes fitted to the observed min/max
- Named branca ColorBrewer ramps or a supplied list of colors
- Fill colors always aligned positionally with the input regions

Example Usage:
    joined = bind(regions, records, key_field='country', value_field='life_exp')
    palette = fit_palette(joined_values(joined), bin_count=5)
    colors = fill_colors(palette, joined)
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
from branca.colormap import LinearColormap, StepColormap
import branca.colormap

# Color used for regions without data and for values outside a palette domain
FALLBACK_COLOR = '#808080'

# 6-class multi-hue, colorblind-safe scheme (ColorBrewer YlGnBu)
DEFAULT_RAMP = (
    '#fdfde6',  # Lightest
    '#d6ebca',
    '#7fcdbb',
    '#41b6c4',
    '#2c7fb8',
    '#253494',  # Darkest
)

FieldAccessor = Union[str, Callable[[Mapping[str, Any]], Any]]


class EmptyDomainError(ValueError):
    """Raised when a palette is fitted without a single finite value."""


class _NoMatch:
    """Marker for regions that have no attribute record."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'NO_MATCH'

    def __bool__(self):
        return False

    def __reduce__(self):
        return (_NoMatch, ())


NO_MATCH = _NoMatch()


@dataclass(frozen=True)
class Region:
    """A named area; geometry is GeoJSON and is never inspected here."""
    id: str
    geometry: Optional[dict] = field(default=None, compare=False, repr=False)
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class JoinedRegion:
    region: Region
    # Records are usually dicts, so they take part in equality but not in hashing
    record: Optional[Mapping[str, Any]] = field(default=None, hash=False)
    value: Any = NO_MATCH

    @property
    def id(self) -> str:
        return self.region.id

    @property
    def matched(self) -> bool:
        return self.value is not NO_MATCH


def _accessor(field_ref: FieldAccessor) -> Callable[[Mapping[str, Any]], Any]:
    if callable(field_ref):
        return field_ref
    return lambda record: record.get(field_ref)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _none_if_missing(value: Any) -> Any:
    return None if _is_missing(value) else value


def bind(regions: Sequence[Region], records, key_field: FieldAccessor,
         value_field: FieldAccessor = 'value') -> List[JoinedRegion]:
    """
    Left-outer join of attribute records onto regions.

    Args:
        regions: Ordered, non-empty sequence of regions
        records: Sequence of mappings or a DataFrame (may be empty)
        key_field: Field name, or callable returning the join key of a record
        value_field: Field name, or callable returning the fill value of a record

    Returns:
        One JoinedRegion per region, in region order. When several records
        share a key the first one in input order is used.
    """
    if not regions:
        raise ValueError('bind() requires at least one region')

    if isinstance(records, pd.DataFrame):
        # Blank cells become None so repeated joins compare equal
        records = records.astype(object).where(records.notna(), None).to_dict('records')

    get_key = _accessor(key_field)
    get_value = _accessor(value_field)

    # First record per key wins, so later duplicates are never inserted
    by_key: Dict[str, Mapping[str, Any]] = {}
    for record in records:
        key = get_key(record)
        if _is_missing(key):
            continue
        by_key.setdefault(str(key), record)

    joined = []
    for region in regions:
        record = by_key.get(region.id)
        if record is None:
            joined.append(JoinedRegion(region))
        else:
            joined.append(JoinedRegion(region, record, _none_if_missing(get_value(record))))
    return joined


def joined_values(joined: Sequence[JoinedRegion]) -> List[Any]:
    """Values of matched regions, in region order."""
    return [j.value for j in joined if j.matched]


def unmatched(joined: Sequence[JoinedRegion]) -> List[str]:
    """Ids of regions that found no attribute record."""
    return [j.id for j in joined if not j.matched]


def count_unmatched(joined: Sequence[JoinedRegion]) -> int:
    return len(unmatched(joined))


def finite_float(value: Any) -> Optional[float]:
    """Return value as a finite float, or None."""
    if value is NO_MATCH or value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class Palette:
    """
    Equal-width stepped color scale fitted to a numeric domain.

    Bins are half-open [lo, hi) except the last one, which also contains
    vmax. Anything outside [vmin, vmax] or non-numeric gets the fallback.
    """
    vmin: float
    vmax: float
    edges: Tuple[float, ...]
    colors: Tuple[str, ...]
    fallback: str = FALLBACK_COLOR

    @property
    def bin_count(self) -> int:
        return len(self.colors)

    @property
    def degenerate(self) -> bool:
        return self.vmin == self.vmax

    def bin_index(self, value: Any) -> Optional[int]:
        number = finite_float(value)
        if number is None or number < self.vmin or number > self.vmax:
            return None
        if self.degenerate:
            return 0

        for i, upper in enumerate(self.edges[1:]):
            if number < upper:
                return i
        # Only the domain maximum reaches this point
        return self.bin_count - 1

    def color(self, value: Any) -> str:
        index = self.bin_index(value)
        if index is None:
            return self.fallback
        return self.colors[index]

    def labels(self, formatter: Optional[Callable[[float], str]] = None) -> List[str]:
        """Legend label per bin, e.g. '10 to 50'."""
        fmt = formatter or (lambda x: f'{x:,.4g}')
        if self.degenerate:
            return [fmt(self.vmin)] * self.bin_count
        return [f'{fmt(lo)} to {fmt(hi)}' for lo, hi in zip(self.edges[:-1], self.edges[1:])]

    def to_colormap(self, caption: str = '') -> StepColormap:
        """
        Build the branca legend matching this palette.

        A degenerate domain has no width to draw, so it becomes a single
        swatch centred on the value.
        """
        if self.degenerate:
            colormap = StepColormap(
                colors=[self.colors[0]],
                index=[self.vmin - 0.5, self.vmin + 0.5],
                vmin=self.vmin - 0.5,
                vmax=self.vmin + 0.5,
            )
        else:
            colormap = StepColormap(
                colors=list(self.colors),
                index=list(self.edges),
                vmin=self.vmin,
                vmax=self.vmax,
            )
        colormap.caption = caption
        return colormap


def resolve_ramp(ramp: Union[str, Sequence[str]], bin_count: int) -> Tuple[str, ...]:
    """
    Turn a ramp name or color list into exactly bin_count colors.

    Args:
        ramp: branca ColorBrewer name (e.g. 'YlGnBu_09') or list of colors
        bin_count: Number of colors wanted

    Returns:
        Tuple of colors ordered from low to high values
    """
    if isinstance(ramp, str):
        base = getattr(branca.colormap.linear, ramp, None)
        if not isinstance(base, LinearColormap):
            raise ValueError(f"Unknown color ramp: {ramp!r}")
        colors = [base.rgb_hex_str(x) for x in base.index]
    else:
        colors = list(ramp)

    if not colors:
        raise ValueError('Color ramp is empty')
    if len(colors) == bin_count:
        return tuple(colors)

    # Resample evenly along the ramp
    if len(colors) == 1:
        return tuple(colors * bin_count)
    linear = LinearColormap(colors, vmin=0, vmax=1)
    return tuple(linear.rgb_hex_str(i / (bin_count - 1)) for i in range(bin_count))


def fit_palette(values: Sequence[Any], bin_count: int,
                ramp: Union[str, Sequence[str]] = DEFAULT_RAMP,
                fallback: str = FALLBACK_COLOR) -> Palette:
    """
    Fit an equal-width stepped palette to the observed values.

    Args:
        values: Observed values; NO_MATCH, None, NaN and non-numeric entries are ignored
        bin_count: Number of bins, at least 2
        ramp: Ordered colors, or the name of a branca ColorBrewer ramp
        fallback: Color for anything outside the fitted domain

    Returns:
        A new, independent Palette

    Raises:
        EmptyDomainError: if no finite value is left to fit
    """
    if bin_count < 2:
        raise ValueError('bin_count must be at least 2')

    # Booleans are not values on a color scale, matching Palette.bin_index
    series = pd.Series([None if v is NO_MATCH or isinstance(v, bool) else v for v in values],
                       dtype=object)
    numeric = pd.to_numeric(series, errors='coerce').dropna()
    numeric = numeric[~numeric.isin([math.inf, -math.inf])]
    if numeric.empty:
        raise EmptyDomainError('Cannot fit a palette without any finite value')

    vmin, vmax = float(numeric.min()), float(numeric.max())
    # Interpolated rather than vmin + i * width, which overflows near the float limits
    edges = [vmin * (1 - i / bin_count) + vmax * (i / bin_count) for i in range(bin_count)] + [vmax]

    return Palette(
        vmin=vmin,
        vmax=vmax,
        edges=tuple(edges),
        colors=resolve_ramp(ramp, bin_count),
        fallback=fallback,
    )


def color_for(palette: Palette, joined: JoinedRegion) -> str:
    """Fill color of one joined region; unmatched regions get the fallback."""
    if not joined.matched:
        return palette.fallback
    return palette.color(joined.value)


def fill_colors(palette: Palette, joined: Sequence[JoinedRegion]) -> List[str]:
    """One fill color per joined region, positionally aligned."""
    return [color_for(palette, j) for j in joined]

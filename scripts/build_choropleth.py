#!/usr/bin/env python3
"""
Build an interactive choropleth map from a CSV attribute table and a GeoJSON
boundary file, and save it as a standalone HTML page.

USAGE:
    python3 scripts/build_choropleth.py --data life_expectancy.csv \
        --geojson countries.geojson --key-field country --value-field life_exp \
        --id-property name --bins 5 --output life_expectancy.html

    --data and --geojson fall back to the CHOROPLETH_DATA and
    CHOROPLETH_GEOJSON environment variables. Both accept URLs.
"""
import argparse
import logging
import os
import sys

import requests

from choropleth import EmptyDomainError
from choropleth_maps import create_choropleth_map

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build a choropleth map as HTML.")
    parser.add_argument('--data', default=os.environ.get('CHOROPLETH_DATA'),
                        help="CSV attribute table (path or URL)")
    parser.add_argument('--geojson', default=os.environ.get('CHOROPLETH_GEOJSON'),
                        help="GeoJSON region boundaries (path or URL)")
    parser.add_argument('--key-field', required=True, help="CSV column holding the join key")
    parser.add_argument('--value-field', required=True, help="CSV column to color regions by")
    parser.add_argument('--id-property', required=True,
                        help="GeoJSON feature property matched against the key field")
    parser.add_argument('--bins', type=int, default=6, help="Number of color bins")
    parser.add_argument('--ramp', default=None,
                        help="branca ColorBrewer ramp name, e.g. YlGnBu_09")
    parser.add_argument('--title', default="Choropleth Map", help="Legend caption")
    parser.add_argument('--output', default='choropleth.html', help="Output HTML file")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    if not args.data or not args.geojson:
        logger.error("ERROR: --data and --geojson are required (or set CHOROPLETH_DATA / CHOROPLETH_GEOJSON)")
        return 1

    options = {'ramp': args.ramp} if args.ramp else {}
    try:
        result = create_choropleth_map(
            csv_path=args.data,
            geojson_path=args.geojson,
            key_field=args.key_field,
            value_field=args.value_field,
            id_property=args.id_property,
            bin_count=args.bins,
            title=args.title,
            **options,
        )
    except EmptyDomainError as e:
        logger.error(f"ERROR: no region has a numeric '{args.value_field}' value: {e}")
        return 1
    except (OSError, ValueError, KeyError, requests.exceptions.RequestException) as e:
        logger.error(f"ERROR: could not build map: {e}")
        return 1

    stats = result['stats']
    logger.info(f"Colored {stats['matched']} of {stats['count']} regions "
                f"({stats['unmatched']} without data), range {stats['min']:,.4g} to {stats['max']:,.4g}")

    result['map'].save(args.output)
    logger.info(f"Saved {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

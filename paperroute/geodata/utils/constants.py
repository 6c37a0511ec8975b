# paperroute/geodata/utils/constants.py
"""
Static OSM tag whitelists used to build feature queries and to classify
the elements that come back.
"""

class FeatureConstants:
    """Tag values queried and accepted for each feature family."""

    HIGHWAY_TYPES = (
        'motorway', 'motorway_link', 'trunk', 'trunk_link',
        'primary', 'primary_link', 'secondary', 'secondary_link',
        'tertiary', 'tertiary_link', 'residential', 'unclassified',
    )

    # Waterway values are always linear features
    WATERWAY_TYPES = ('river', 'stream', 'canal')
    # Values accepted on a bare `water=*` tag in the query
    STANDING_WATER_TYPES = ('lake', 'pond', 'reservoir')
    WATER_TYPES = WATERWAY_TYPES + STANDING_WATER_TYPES + ('water',)
    LINEAR_WATER_TYPES = frozenset(WATERWAY_TYPES)

    LANDUSE_TYPES = ('forest', 'meadow', 'grass', 'farmland')

    # Minimum vertex counts a geometry needs to be kept
    MIN_ROAD_POINTS = 2
    MIN_WATER_POINTS = 2
    MIN_LANDUSE_POINTS = 3

    OUTER_ROLE = 'outer'

    # Address keys tried in order when naming the locality
    LOCALITY_KEYS = ('city', 'town', 'village', 'municipality')

    # Feature family names; each is also the family's cache subdirectory
    ROADS = 'roads'
    WATER = 'water'
    LANDUSE = 'landuse'
    LOCATIONS = 'locations'
    FAMILIES = (ROADS, WATER, LANDUSE, LOCATIONS)

# Copyright (c) 2023 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Grid navigation common data definitions and structures."""

from enum import Enum, IntFlag

EARTH_RADIUS = 6371200.0  # m, same sphere as GEMPAK and the NCEP IP library
GRID_TOLERANCE = 1.0  # grid lengths allowed beyond the grid edges
INVERSE_TOLERANCE = 1e-9  # grid lengths
MAX_INVERSE_ITERATIONS = 25
MILLIDEGREES = 1e-3
MIN_GDS_LENGTH = 13
MISSING_FLOAT = -9999.0
POLAR_TRUE_LATITUDE = 60.0
POLE_EPSILON = 1e-10


class InvalidGridDescription(ValueError):
    """Grid description section cannot be interpreted."""


class GridType(Enum):
    """Grid description section data representation types."""

    equidistant_cylindrical = 0
    mercator = 1
    lambert_conformal = 3
    gaussian = 4
    polar_stereographic = 5
    rotated_e_grid = 203
    rotated_latlon = 205


class Direction(Enum):
    """Transform direction."""

    grid_to_earth = 1
    earth_to_grid = -1


class ScanMode(IntFlag):
    """Scanning mode flags."""

    j_consecutive = 32
    j_positive = 64
    i_negative = 128
    wind_points = 256


class ResolutionFlags(IntFlag):
    """Resolution and component flags."""

    grid_relative = 8
    oblate_earth = 64
    increments_given = 128


class ProjectionCenter(IntFlag):
    """Projection center flags."""

    bipolar = 64
    south_pole = 128

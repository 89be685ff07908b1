# Copyright (c) 2022 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Grid description section decoding."""

from functools import cached_property
import logging
import numbers

import numpy as np
import pyproj

from gridnav.common import (EARTH_RADIUS, GridType, InvalidGridDescription,
                            MILLIDEGREES, MIN_GDS_LENGTH, POLAR_TRUE_LATITUDE,
                            ProjectionCenter, ResolutionFlags, ScanMode)
from gridnav.geocalc import earth_to_rotated, gaussian_latitudes
from gridnav.tools import NamedFields

logger = logging.getLogger(__name__)


def _flag_bits(flag_class):
    """Return all bits defined by a flag class."""
    bits = 0
    for member in flag_class:
        bits |= member.value
    return bits


def _degrees(value):
    """Convert millidegrees to degrees."""
    return value * MILLIDEGREES


def _meters(value):
    """Convert integer meters to float."""
    return float(value)


def _resolution_flags(value):
    """Decode resolution and component flags."""
    if not 0 <= value <= 255:
        raise InvalidGridDescription(f'Resolution and component flags {value} out of range.')
    # Reserved bits are ignored
    return ResolutionFlags(value & _flag_bits(ResolutionFlags))


def _scan_mode(value):
    """Decode scanning mode flags."""
    if value < 0 or value & ~_flag_bits(ScanMode):
        raise InvalidGridDescription(f'Undefined scanning mode {value}.')
    return ScanMode(value)


def _projection_center(value):
    """Decode projection center flags."""
    if value < 0 or value & ~_flag_bits(ProjectionCenter):
        raise InvalidGridDescription(f'Undefined projection center flag {value}.')
    center = ProjectionCenter(value)
    if center & ProjectionCenter.bipolar:
        raise InvalidGridDescription('Bipolar projections are not supported.')
    return center


GDS_LAYOUTS = {
    GridType.equidistant_cylindrical: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('lat2', 6, _degrees), ('lon2', 7, _degrees), ('dlon', 8, _degrees),
         ('dlat', 9, _degrees), ('scan', 10, _scan_mode)], 'LatLonGrid'
    ),
    GridType.mercator: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('lat2', 6, _degrees), ('lon2', 7, _degrees), ('latin', 8, _degrees),
         ('scan', 10, _scan_mode), ('dx', 11, _meters), ('dy', 12, _meters)], 'MercatorGrid'
    ),
    GridType.lambert_conformal: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('orient', 6, _degrees), ('dx', 7, _meters), ('dy', 8, _meters),
         ('center', 9, _projection_center), ('scan', 10, _scan_mode),
         ('latin1', 11, _degrees), ('latin2', 12, _degrees)], 'LambertConformalGrid'
    ),
    GridType.gaussian: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('lat2', 6, _degrees), ('lon2', 7, _degrees), ('dlon', 8, _degrees),
         ('n', 9), ('scan', 10, _scan_mode)], 'GaussianGrid'
    ),
    GridType.polar_stereographic: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('orient', 6, _degrees), ('dx', 7, _meters), ('dy', 8, _meters),
         ('center', 9, _projection_center), ('scan', 10, _scan_mode)], 'PolarStereographicGrid'
    ),
    GridType.rotated_e_grid: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('lat0', 6, _degrees), ('lon0', 7, _degrees), ('dlon', 8, _degrees),
         ('dlat', 9, _degrees), ('scan', 10, _scan_mode)], 'RotatedEGrid'
    ),
    GridType.rotated_latlon: NamedFields(
        [('lat1', 3, _degrees), ('lon1', 4, _degrees), ('flags', 5, _resolution_flags),
         ('lat0', 6, _degrees), ('lon0', 7, _degrees), ('scan', 10, _scan_mode),
         ('lat2', 11, _degrees), ('lon2', 12, _degrees)], 'RotatedLatLonGrid'
    ),
}


def _check_latitude(params, *names, inclusive=True):
    """Ensure latitudes are on the globe."""
    for name in names:
        lat = getattr(params, name)
        if abs(lat) > 90 or (not inclusive and abs(lat) == 90):
            raise InvalidGridDescription(f'Latitude {name}={lat} out of range.')


def _check_longitude(params, *names):
    """Ensure longitudes are within one revolution either way."""
    for name in names:
        lon = getattr(params, name)
        if abs(lon) > 360:
            raise InvalidGridDescription(f'Longitude {name}={lon} out of range.')


def _check_nonzero(params, *names):
    """Ensure grid increments are usable."""
    for name in names:
        if getattr(params, name) == 0:
            raise InvalidGridDescription(f'Grid increment {name} must be nonzero.')


def _check_corner_dimensions(im, jm):
    """Ensure increments can be derived from corner points."""
    if im < 2 or jm < 2:
        raise InvalidGridDescription(
            f'Grid dimensions {im}x{jm} too small to derive increments from corner points.'
        )


def _normalize_orientation(params, name):
    """Check an orientation longitude and put it into [0, 360)."""
    orient = getattr(params, name)
    if not -360 < orient < 360:
        raise InvalidGridDescription(f'Orientation {name}={orient} outside (-360, 360).')
    return params._replace(**{name: orient % 360})


def _hemisphere(params):
    """Return 1 for north polar projections and -1 for south."""
    return -1 if params.center & ProjectionCenter.south_pole else 1


def _validate_latlon(params, im, jm):
    _check_corner_dimensions(im, jm)
    _check_latitude(params, 'lat1', 'lat2')
    _check_longitude(params, 'lon1', 'lon2')
    if params.lat1 == params.lat2:
        raise InvalidGridDescription('First and last latitudes must differ.')
    return params


def _validate_mercator(params, im, jm):
    _check_corner_dimensions(im, jm)
    _check_latitude(params, 'lat1', 'lat2', 'latin', inclusive=False)
    _check_longitude(params, 'lon1', 'lon2')
    _check_nonzero(params, 'dx', 'dy')
    return params


def _validate_lambert(params, im, jm):
    _check_latitude(params, 'lat1')
    _check_latitude(params, 'latin1', 'latin2', inclusive=False)
    _check_longitude(params, 'lon1')
    _check_nonzero(params, 'dx', 'dy')
    h = _hemisphere(params)
    if h * params.latin1 <= 0 or h * params.latin2 <= 0:
        raise InvalidGridDescription(
            f'Standard latitudes {params.latin1} and {params.latin2} must lie in the '
            f'{"southern" if h < 0 else "northern"} hemisphere.'
        )
    if params.lat1 == -h * 90:
        raise InvalidGridDescription('First grid point cannot be at the opposite pole.')
    return _normalize_orientation(params, 'orient')


def _validate_gaussian(params, im, jm):
    if im < 2:
        raise InvalidGridDescription(
            f'Grid dimension im={im} too small to derive increments from corner points.'
        )
    _check_latitude(params, 'lat1', 'lat2')
    _check_longitude(params, 'lon1', 'lon2')
    if params.n <= 0:
        raise InvalidGridDescription(
            f'Number of Gaussian latitudes N={params.n} must be positive.')
    if jm > 2 * params.n:
        raise InvalidGridDescription(
            f'{jm} rows do not fit in {2 * params.n} Gaussian latitudes.')
    lats, _ = gaussian_latitudes(params.n)
    j1 = int(np.argmin(np.abs(lats - params.lat1)))
    step = 1 if params.scan & ScanMode.j_positive else -1
    if not 0 <= j1 + step * (jm - 1) < 2 * params.n:
        raise InvalidGridDescription(
            f'Grid starting at latitude {params.lat1} runs off the Gaussian latitudes.'
        )
    return params


def _validate_polar(params, im, jm):
    _check_latitude(params, 'lat1')
    _check_longitude(params, 'lon1')
    _check_nonzero(params, 'dx', 'dy')
    if params.lat1 == -_hemisphere(params) * 90:
        raise InvalidGridDescription('First grid point cannot be at the opposite pole.')
    return _normalize_orientation(params, 'orient')


def _validate_e_grid(params, im, jm):
    _check_latitude(params, 'lat1', 'lat0')
    _check_longitude(params, 'lon1')
    _check_nonzero(params, 'dlon', 'dlat')
    return _normalize_orientation(params, 'lon0')


def _validate_rotated(params, im, jm):
    _check_corner_dimensions(im, jm)
    _check_latitude(params, 'lat1', 'lat2', 'lat0')
    _check_longitude(params, 'lon1', 'lon2')
    params = _normalize_orientation(params, 'lon0')
    (wbd, ebd), (sbd, nbd) = earth_to_rotated(np.array([params.lon1, params.lon2]),
                                              np.array([params.lat1, params.lat2]),
                                              params.lon0, params.lat0)
    if wbd == ebd or sbd == nbd:
        raise InvalidGridDescription(
            'First and last grid points do not span the rotated grid in both directions.'
        )
    return params


VALIDATORS = {
    GridType.equidistant_cylindrical: _validate_latlon,
    GridType.mercator: _validate_mercator,
    GridType.lambert_conformal: _validate_lambert,
    GridType.gaussian: _validate_gaussian,
    GridType.polar_stereographic: _validate_polar,
    GridType.rotated_e_grid: _validate_e_grid,
    GridType.rotated_latlon: _validate_rotated,
}


class GridDescriptor:
    """Validated, immutable grid description section."""

    def __init__(self, kgds):
        """Decode a grid description section.

        Parameters
        ----------
        kgds : array_like of int
            Flat grid description section parameters in the NCEP ``kgds``
            layout. Angles are integer millidegrees. Only the first
            positions used by the grid type are read.

        Raises
        ------
        InvalidGridDescription
            The parameters do not describe a supported grid.
        """
        kgds = tuple(kgds)
        if len(kgds) < MIN_GDS_LENGTH:
            raise InvalidGridDescription(
                f'Grid description needs at least {MIN_GDS_LENGTH} values, got {len(kgds)}.'
            )
        if not all(isinstance(v, numbers.Integral) for v in kgds):
            raise InvalidGridDescription('Grid description values must be integers.')
        self._kgds = tuple(int(v) for v in kgds)

        try:
            self._grid_type = GridType(self._kgds[0])
        except ValueError:
            raise InvalidGridDescription(f'Unknown grid type {self._kgds[0]}.') from None

        self._im, self._jm = self._kgds[1], self._kgds[2]
        if self._im <= 0 or self._jm <= 0:
            raise InvalidGridDescription(
                f'Grid dimensions must be positive, got {self._im}x{self._jm}.'
            )

        params = GDS_LAYOUTS[self._grid_type].unpack(self._kgds)
        if params.scan & ScanMode.wind_points and self._grid_type != GridType.rotated_e_grid:
            raise InvalidGridDescription(
                f'Wind point scanning flag is only valid for {GridType.rotated_e_grid.name}.'
            )
        if params.flags & ResolutionFlags.oblate_earth:
            logger.warning('Oblate earth currently not supported. '
                           'Using sphere of radius %.1f m.', EARTH_RADIUS)
        self._params = VALIDATORS[self._grid_type](params, self._im, self._jm)

    @classmethod
    def from_fields(cls, grid_type, im, jm, **fields):
        """Build a descriptor from named integer fields.

        Parameters
        ----------
        grid_type : `GridType` or int
            Grid data representation type.

        im, jm : int
            Number of points along the i and j axes.

        fields
            Raw integer values for every field of the grid type layout,
            e.g. ``lat1=-7446`` for -7.446 degrees.
        """
        try:
            grid_type = GridType(grid_type)
        except ValueError:
            raise InvalidGridDescription(f'Unknown grid type {grid_type}.') from None
        layout = GDS_LAYOUTS[grid_type]
        try:
            kgds = layout.pack(max(layout.size, MIN_GDS_LENGTH), **fields)
        except TypeError as e:
            raise InvalidGridDescription(f'Incomplete {grid_type.name} fields: {e}') from None
        kgds[:3] = [grid_type.value, im, jm]
        return cls(kgds)

    @property
    def kgds(self):
        """Return the integer grid description parameters."""
        return self._kgds

    @property
    def grid_type(self):
        """Return the grid type."""
        return self._grid_type

    @property
    def im(self):
        """Return the number of points along the i axis."""
        return self._im

    @property
    def jm(self):
        """Return the number of points along the j axis."""
        return self._jm

    @property
    def npts(self):
        """Return the number of grid points."""
        return self._im * self._jm

    @property
    def shape(self):
        """Return the grid shape as (jm, im)."""
        return self._jm, self._im

    @property
    def params(self):
        """Return decoded projection parameters."""
        return self._params

    @property
    def scan_mode(self):
        """Return the scanning mode flags."""
        return self._params.scan

    @property
    def resolution_flags(self):
        """Return the resolution and component flags."""
        return self._params.flags

    @property
    def grid_relative(self):
        """Return whether vector components are resolved relative to the grid."""
        return bool(self._params.flags & ResolutionFlags.grid_relative)

    @cached_property
    def crs(self):
        """Return the coordinate reference system of the grid."""
        p = self._params
        ellps = 'sphere'
        if self._grid_type in (GridType.equidistant_cylindrical, GridType.gaussian):
            proj = {'proj': 'longlat'}
        elif self._grid_type == GridType.mercator:
            proj = {'proj': 'merc', 'lat_ts': p.latin, 'lon_0': p.lon1}
        elif self._grid_type == GridType.lambert_conformal:
            proj = {'proj': 'lcc', 'lat_0': p.latin1, 'lon_0': p.orient,
                    'lat_1': p.latin1, 'lat_2': p.latin2}
        elif self._grid_type == GridType.polar_stereographic:
            h = _hemisphere(p)
            proj = {'proj': 'stere', 'lat_0': h * 90, 'lat_ts': h * POLAR_TRUE_LATITUDE,
                    'lon_0': p.orient}
        else:
            proj = {'proj': 'ob_tran', 'o_proj': 'longlat', 'o_lat_p': 90 - p.lat0,
                    'o_lon_p': 0, 'lon_0': p.lon0}
        # R takes precedence over ellps
        proj.update({'ellps': ellps, 'R': EARTH_RADIUS})
        return pyproj.CRS.from_dict(proj)

    def __eq__(self, other):
        """Compare grid descriptions."""
        if not isinstance(other, GridDescriptor):
            return NotImplemented
        return self._kgds == other._kgds

    def __hash__(self):
        """Hash the grid description parameters."""
        return hash(self._kgds)

    def __repr__(self):
        """Return string representation of the GridDescriptor."""
        return f'GridDescriptor({self._grid_type.name}, im={self._im}, jm={self._jm})'

# Copyright (c) 2022 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Batched coordinate transforms between grid and earth coordinates."""

import logging

import numpy as np
import pandas as pd
import xarray as xr

from gridnav.common import Direction, MISSING_FLOAT
from gridnav.projections import handler_for

logger = logging.getLogger(__name__)

MAP_FIELDS = ('xlon', 'xlat', 'ylon', 'ylat', 'area')
ROTATION_FIELDS = ('crot', 'srot')
FIELD_ATTRS = {
    'x': {'long_name': 'grid x coordinate', 'units': '1'},
    'y': {'long_name': 'grid y coordinate', 'units': '1'},
    'lon': {'long_name': 'longitude', 'units': 'degrees_east'},
    'lat': {'long_name': 'latitude', 'units': 'degrees_north'},
    'crot': {'long_name': 'vector rotation cosine', 'units': '1'},
    'srot': {'long_name': 'vector rotation sine', 'units': '1'},
    'xlon': {'long_name': 'dx/dlon', 'units': 'degree-1'},
    'xlat': {'long_name': 'dx/dlat', 'units': 'degree-1'},
    'ylon': {'long_name': 'dy/dlon', 'units': 'degree-1'},
    'ylat': {'long_name': 'dy/dlat', 'units': 'degree-1'},
    'area': {'long_name': 'grid cell area', 'units': 'm2'},
}


class TransformRequest:
    """Points to transform and the outputs wanted."""

    def __init__(self, first, second, direction=Direction.grid_to_earth,
                 fill=MISSING_FLOAT, rotation=True, map_factors=True):
        """Create a transform request.

        Parameters
        ----------
        first, second : array_like
            Grid x and y (1-based) for grid to earth requests, or longitude
            and latitude in degrees for earth to grid requests. Both must
            have the same shape, which the outputs keep.

        direction : `Direction` or int
            Transform direction. 1 is grid to earth and -1 is earth to grid.

        fill : float
            Value given to outputs at points that cannot be transformed.

        rotation : bool
            Calculate vector rotation coefficients.

        map_factors : bool
            Calculate map derivatives and grid cell area.
        """
        self.direction = Direction(direction)
        self.first = np.array(first, dtype=float, ndmin=1)
        self.second = np.array(second, dtype=float, ndmin=1)
        if self.first.shape != self.second.shape:
            raise ValueError(f'Coordinate shapes {self.first.shape} and '
                             f'{self.second.shape} do not match.')
        self.fill = float(fill)
        if not np.isfinite(self.fill):
            raise ValueError('Fill value must be finite.')
        self.rotation = bool(rotation)
        self.map_factors = bool(map_factors)

    @classmethod
    def from_grid(cls, x, y, **kwargs):
        """Request earth coordinates of grid points."""
        return cls(x, y, Direction.grid_to_earth, **kwargs)

    @classmethod
    def from_earth(cls, lon, lat, **kwargs):
        """Request grid coordinates of earth locations."""
        return cls(lon, lat, Direction.earth_to_grid, **kwargs)

    @classmethod
    def full_grid(cls, descriptor, **kwargs):
        """Request earth coordinates of every point of a grid.

        Coordinates have shape (jm, im) with i varying fastest.
        """
        y, x = np.mgrid[1:descriptor.jm + 1, 1:descriptor.im + 1]
        return cls.from_grid(x, y, **kwargs)

    @property
    def shape(self):
        """Return the shape of the requested points."""
        return self.first.shape

    @property
    def size(self):
        """Return the number of requested points."""
        return self.first.size

    def __repr__(self):
        """Return string representation of the TransformRequest."""
        return (f'TransformRequest({self.direction.name}, shape={self.shape}, '
                f'fill={self.fill})')


class TransformResult:
    """Transformed coordinates and per-point auxiliary quantities."""

    def __init__(self, descriptor, direction, fill, valid, **fields):
        self.descriptor = descriptor
        self.direction = direction
        self.fill = fill
        self.valid = valid
        self.x = fields['x']
        self.y = fields['y']
        self.lon = fields['lon']
        self.lat = fields['lat']
        for name in ROTATION_FIELDS + MAP_FIELDS:
            setattr(self, name, fields.get(name))

    @property
    def count(self):
        """Return the number of points successfully transformed."""
        return int(np.count_nonzero(self.valid))

    def _fields(self):
        names = ('x', 'y', 'lon', 'lat') + ROTATION_FIELDS + MAP_FIELDS
        return {name: getattr(self, name) for name in names
                if getattr(self, name) is not None}

    def rotate_vectors(self, u, v, to_earth=True):
        """Rotate vector components at the transformed points.

        Parameters
        ----------
        u, v : array_like
            Vector components with the shape of the transformed points.

        to_earth : bool
            Convert grid-relative components to earth-relative if True,
            otherwise earth-relative to grid-relative.

        Returns
        -------
        tuple
            Rotated u and v components. Invalid points are set to the fill value.
        """
        if self.crot is None:
            raise ValueError('Rotation coefficients were not requested.')
        return rotate_vectors(u, v, self.crot, self.srot, to_earth=to_earth, fill=self.fill)

    def to_xarray(self):
        """Return the transform result as an `xarray.Dataset`.

        Invalid points are masked.
        """
        ndim = self.valid.ndim
        if ndim == 1:
            dims = ['point']
        elif ndim == 2:
            dims = ['y', 'x']
        else:
            dims = [f'dim_{n}' for n in range(ndim)]

        data_vars = {}
        for name, values in self._fields().items():
            mask = ~self.valid
            if (name in ('x', 'y') and self.direction == Direction.grid_to_earth
               or name in ('lon', 'lat') and self.direction == Direction.earth_to_grid):
                mask = np.zeros_like(self.valid)
            data = np.ma.array(values, mask=mask)
            data_vars[f'grid_{name}' if name in ('x', 'y') else name] = xr.DataArray(
                data=data, dims=dims, attrs=FIELD_ATTRS[name]
            )

        return xr.Dataset(
            data_vars=data_vars,
            attrs={
                **self.descriptor.crs.to_cf(),
                'grid_type': self.descriptor.grid_type.name,
                'direction': self.direction.name,
                'count': self.count,
            }
        )

    def to_dataframe(self):
        """Return the transform result as a `pandas.DataFrame` with one row per point."""
        df = pd.DataFrame({name: values.ravel() for name, values in self._fields().items()})
        df['valid'] = self.valid.ravel()
        return df

    def __repr__(self):
        """Return string representation of the TransformResult."""
        return (f'TransformResult({self.descriptor!r}, {self.direction.name}, '
                f'count={self.count}, size={self.valid.size})')


def rotate_vectors(u, v, crot, srot, to_earth=True, fill=MISSING_FLOAT):
    """Rotate vector components between grid and earth frames.

    Parameters
    ----------
    u, v : array_like
        Vector components.

    crot, srot : array_like
        Rotation coefficients from a transform.

    to_earth : bool
        Convert grid-relative components to earth-relative if True,
        otherwise earth-relative to grid-relative.

    fill : float
        Fill value. Points where any input is the fill value are set to it.

    Returns
    -------
    tuple
        Rotated u and v components.
    """
    u, v, crot, srot = np.broadcast_arrays(*(np.asarray(a, dtype=float)
                                             for a in (u, v, crot, srot)))
    missing = (u == fill) | (v == fill) | (crot == fill) | (srot == fill)
    if to_earth:
        ur = crot * u + srot * v
        vr = -srot * u + crot * v
    else:
        ur = crot * u - srot * v
        vr = srot * u + crot * v
    return np.where(missing, fill, ur), np.where(missing, fill, vr)


def transform(descriptor, request):
    """Transform points between grid and earth coordinates.

    Parameters
    ----------
    descriptor : `GridDescriptor`
        Grid to transform on.

    request : `TransformRequest`
        Points, direction and requested outputs.

    Returns
    -------
    `TransformResult`
        Outputs with the shape of the requested points. Points outside the
        grid domain, or that could not be inverted, have every computed
        output set to the fill value and do not count as transformed.
    """
    handler = handler_for(descriptor)
    first = request.first.ravel()
    second = request.second.ravel()
    fill = request.fill

    if request.direction == Direction.grid_to_earth:
        x, y = first, second
        lon, lat, valid = handler.forward(x, y)
        fields = {'x': x.copy(), 'y': y.copy(),
                  'lon': np.where(valid, lon, fill), 'lat': np.where(valid, lat, fill)}
    else:
        lon, lat = first, second
        x, y, valid = handler.inverse(lon, lat)
        fields = {'x': np.where(valid, x, fill), 'y': np.where(valid, y, fill),
                  'lon': lon.copy(), 'lat': lat.copy()}

    # Auxiliary quantities are only calculated at valid points
    vlon = lon[valid]
    vlat = lat[valid]
    auxiliary = {}
    if request.rotation:
        auxiliary.update(zip(ROTATION_FIELDS, handler.rotation(vlon, vlat)))
    if request.map_factors:
        auxiliary.update(zip(MAP_FIELDS, handler.map_jacobian(vlon, vlat)))
    for name, values in auxiliary.items():
        out = np.full(first.shape, fill)
        out[valid] = values
        fields[name] = out

    shape = request.shape
    fields = {name: values.reshape(shape) for name, values in fields.items()}
    valid = valid.reshape(shape)
    logger.debug('Transformed %d of %d points on %s grid.', np.count_nonzero(valid),
                 valid.size, descriptor.grid_type.name)
    return TransformResult(descriptor, request.direction, fill, valid, **fields)

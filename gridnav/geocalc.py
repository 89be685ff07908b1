# Copyright (c) 2021 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Spherical earth calculations."""

import numpy as np

from gridnav.common import POLE_EPSILON


def normalize_longitude(lon):
    """Put longitude into the range [0, 360).

    Parameters
    ----------
    lon : array_like
        Longitude in degrees.

    Notes
    -----
    Values that round up to 360 are returned as 0.
    """
    lon = np.mod(lon, 360.0)
    return np.where(lon >= 360.0, 0.0, lon)


def wrap_longitude(lon):
    """Put longitude differences into the range [-180, 180)."""
    return np.mod(np.asarray(lon) + 180.0, 360.0) - 180.0


def earth_to_rotated(lon, lat, lon0, lat0):
    """Rotate earth coordinates so (lon0, lat0) becomes the origin.

    Parameters
    ----------
    lon, lat : array_like
        Earth longitude and latitude in degrees.

    lon0, lat0 : float
        Earth coordinates of the rotated grid center in degrees.

    Returns
    -------
    tuple
        Rotated longitude and latitude in degrees. Rotated longitude
        is in the range [-180, 180].
    """
    slat0 = np.sin(np.radians(lat0))
    clat0 = np.cos(np.radians(lat0))
    dlon = np.radians(lon - lon0)
    slat = np.sin(np.radians(lat))
    clat = np.cos(np.radians(lat))

    xr = clat0 * clat * np.cos(dlon) + slat0 * slat
    yr = clat * np.sin(dlon)
    zr = clat0 * slat - slat0 * clat * np.cos(dlon)

    lonr = np.degrees(np.arctan2(yr, xr))
    latr = np.degrees(np.arctan2(zr, np.hypot(xr, yr)))
    return lonr, latr


def rotated_to_earth(lonr, latr, lon0, lat0):
    """Rotate grid coordinates back to the earth frame.

    Parameters
    ----------
    lonr, latr : array_like
        Rotated longitude and latitude in degrees.

    lon0, lat0 : float
        Earth coordinates of the rotated grid center in degrees.

    Returns
    -------
    tuple
        Earth longitude in [0, 360) and latitude in degrees.
    """
    slat0 = np.sin(np.radians(lat0))
    clat0 = np.cos(np.radians(lat0))
    slatr = np.sin(np.radians(latr))
    clatr = np.cos(np.radians(latr))
    clonr = np.cos(np.radians(lonr))

    x = clat0 * clatr * clonr - slat0 * slatr
    y = clatr * np.sin(np.radians(lonr))
    z = slat0 * clatr * clonr + clat0 * slatr

    lon = normalize_longitude(lon0 + np.degrees(np.arctan2(y, x)))
    lat = np.degrees(np.arctan2(z, np.hypot(x, y)))
    return lon, lat


def rotated_grid_rotation(lon, lat, lon0, lat0):
    """Calculate vector rotation coefficients for a rotated grid.

    Parameters
    ----------
    lon, lat : array_like
        Earth longitude and latitude in degrees.

    lon0, lat0 : float
        Earth coordinates of the rotated grid center in degrees.

    Returns
    -------
    tuple
        Cosine and sine of the clockwise angle from true north to grid
        north such that ``ugrid = crot * uearth - srot * vearth`` and
        ``vgrid = srot * uearth + crot * vearth``.
    """
    slat0 = np.sin(np.radians(lat0))
    clat0 = np.cos(np.radians(lat0))
    dlon = np.radians(lon - lon0)
    slat = np.sin(np.radians(lat))
    clat = np.cos(np.radians(lat))
    slatr = clat0 * slat - slat0 * clat * np.cos(dlon)
    clatr = np.sqrt(np.clip(1 - slatr**2, 0, None))

    at_pole = clatr <= POLE_EPSILON
    safe_clatr = np.where(at_pole, 1.0, clatr)
    crot = (clat0 * clat + slat0 * slat * np.cos(dlon)) / safe_clatr
    srot = slat0 * np.sin(dlon) / safe_clatr

    # Grid north is undefined at the rotated poles
    crot = np.where(at_pole, np.where(slatr * slat0 >= 0, -1.0, 1.0), crot)
    srot = np.where(at_pole, 0.0, srot)

    norm = np.hypot(crot, srot)
    return crot / norm, srot / norm


def band_area(lat, dlat, dlon, radius):
    """Area of a latitude band cell centered on a latitude.

    Parameters
    ----------
    lat : array_like
        Cell center latitude in degrees.

    dlat, dlon : float
        Cell latitude and longitude extents in degrees.

    radius : float
        Sphere radius in meters.
    """
    upper = np.clip(lat + abs(dlat) / 2, -90.0, 90.0)
    lower = np.clip(lat - abs(dlat) / 2, -90.0, 90.0)
    return (radius**2 * abs(np.radians(dlon))
            * np.abs(np.sin(np.radians(upper)) - np.sin(np.radians(lower))))


def gaussian_latitudes(n):
    """Calculate Gaussian latitudes and weights.

    Parameters
    ----------
    n : int
        Number of latitude circles between a pole and the equator.

    Returns
    -------
    tuple
        Latitudes in degrees ordered south to north and their
        quadrature weights, which sum to 2.
    """
    sines, weights = np.polynomial.legendre.leggauss(2 * n)
    return np.degrees(np.arcsin(sines)), weights

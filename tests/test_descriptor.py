# Copyright (c) 2025 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Tests for decoding grid description sections."""

import logging

import numpy as np
import pytest

from gridnav import GridDescriptor, GridType, InvalidGridDescription, ScanMode

REFERENCE = [205, 251, 201, -7446, -144139, 8, 54000, -106000, 0, 0, 64, 44560, 14744]
LAMBERT = [3, 185, 129, 12190, -133459, 8, -95000, 40635, 40635, 0, 64, 25000, 25000]


def replace(kgds, **positions):
    """Copy a grid description with some positions changed."""
    kgds = list(kgds)
    for pos, value in positions.items():
        kgds[int(pos[1:])] = value
    return kgds


def test_reference_descriptor():
    """Test decoding of the rotated reference grid."""
    descriptor = GridDescriptor(REFERENCE)

    assert descriptor.grid_type == GridType.rotated_latlon
    assert descriptor.im == 251
    assert descriptor.jm == 201
    assert descriptor.npts == 251 * 201
    assert descriptor.shape == (201, 251)
    assert descriptor.scan_mode == ScanMode.j_positive
    assert descriptor.grid_relative
    assert descriptor.kgds == tuple(REFERENCE)

    params = descriptor.params
    assert params.lat1 == pytest.approx(-7.446)
    assert params.lon1 == pytest.approx(-144.139)
    assert params.lat0 == pytest.approx(54)
    assert params.lon0 == pytest.approx(254)
    assert params.lat2 == pytest.approx(44.56)
    assert params.lon2 == pytest.approx(14.744)


def test_numpy_input():
    """Test numpy integer arrays are accepted."""
    descriptor = GridDescriptor(np.array(REFERENCE, dtype=np.int32))
    assert descriptor == GridDescriptor(REFERENCE)
    assert all(type(v) is int for v in descriptor.kgds)


@pytest.mark.parametrize('kgds, message', [
    (replace(REFERENCE, p0=2), 'Unknown grid type'),
    (replace(REFERENCE, p1=0), 'dimensions must be positive'),
    (replace(REFERENCE, p2=-5), 'dimensions must be positive'),
    (REFERENCE[:12], 'at least 13'),
    (REFERENCE[:-1] + [14744.0], 'must be integers'),
    (replace(REFERENCE, p10=65), 'Undefined scanning mode'),
    (replace(REFERENCE, p10=320), 'Wind point'),
    (replace(REFERENCE, p5=300), 'out of range'),
    (replace(REFERENCE, p7=400000), 'Orientation'),
    (replace(REFERENCE, p3=-95000), 'Latitude'),
    (replace(REFERENCE, p11=-7446, p12=-144139), 'do not span'),
    (replace(LAMBERT, p11=-25000, p12=-25000), 'northern hemisphere'),
    (replace(LAMBERT, p9=64), 'Bipolar'),
    (replace(LAMBERT, p8=0), 'nonzero'),
    ([1, 100, 80, -20000, 100000, 128, 30000, 160000, 90000, 0, 64, 50000, 50000],
     'latin'),
    ([4, 192, 96, 88542, 0, 128, -88542, 358125, 1875, 47, 0, 0, 0], 'Gaussian latitudes'),
    ([0, 360, 181, 10000, 0, 128, 10000, 359000, 1000, 1000, 64, 0, 0], 'must differ'),
])
def test_invalid_descriptor(kgds, message):
    """Test rejection of unusable grid descriptions."""
    with pytest.raises(InvalidGridDescription, match=message):
        GridDescriptor(kgds)


def test_invalid_is_value_error():
    """Test invalid descriptions can be caught as ValueError."""
    with pytest.raises(ValueError):
        GridDescriptor(replace(REFERENCE, p0=99))


def test_from_fields():
    """Test building a descriptor from named fields."""
    descriptor = GridDescriptor.from_fields(
        GridType.rotated_latlon, 251, 201, lat1=-7446, lon1=-144139, flags=8,
        lat0=54000, lon0=-106000, scan=64, lat2=44560, lon2=14744
    )
    assert descriptor == GridDescriptor(REFERENCE)


def test_from_fields_incomplete():
    """Test building a descriptor with missing fields."""
    with pytest.raises(InvalidGridDescription, match='Incomplete'):
        GridDescriptor.from_fields(205, 251, 201, lat1=-7446, lon1=-144139)


@pytest.mark.parametrize('kgds, proj', [
    ([0, 360, 181, -90000, 0, 128, 90000, 359000, 1000, 1000, 64, 0, 0], 'longlat'),
    ([1, 100, 80, -20000, 100000, 128, 30000, 160000, 20000, 0, 64, 50000, 50000], 'merc'),
    (LAMBERT, 'lcc'),
    ([5, 147, 110, -268, -139475, 8, -105000, 90755, 90755, 0, 64, 0, 0], 'stere'),
])
def test_crs(kgds, proj):
    """Test the coordinate reference system of a grid."""
    crs = GridDescriptor(kgds).crs
    params = crs.to_dict()
    assert params['proj'] == proj
    assert params['R'] == pytest.approx(6371200)


def test_immutable():
    """Test descriptors cannot be changed after decoding."""
    descriptor = GridDescriptor(REFERENCE)
    with pytest.raises(AttributeError):
        descriptor.im = 10
    with pytest.raises(AttributeError):
        descriptor.params.lat1 = 0


def test_hashable():
    """Test equal descriptors hash together."""
    descriptors = {GridDescriptor(REFERENCE), GridDescriptor(list(REFERENCE)),
                   GridDescriptor(LAMBERT)}
    assert len(descriptors) == 2


def test_oblate_earth_warning(caplog):
    """Test an oblate earth flag falls back to a sphere with a warning."""
    with caplog.at_level(logging.WARNING, logger='gridnav.gds'):
        descriptor = GridDescriptor(replace(REFERENCE, p5=72))

    assert 'Oblate earth currently not supported' in caplog.text
    assert descriptor.grid_relative


def test_repr():
    """Test descriptor string representation."""
    assert repr(GridDescriptor(REFERENCE)) == 'GridDescriptor(rotated_latlon, im=251, jm=201)'

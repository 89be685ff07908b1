# Copyright (c) 2025 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Tests for batched grid transforms."""

import numpy as np
import pytest

from gridnav import (Direction, GridDescriptor, GridType, rotate_vectors, transform,
                     TransformRequest)
from gridnav import projections

FILL = -9999.0
REFERENCE = [205, 251, 201, -7446, -144139, 8, 54000, -106000, 0, 0, 64, 44560, 14744]
LATLON = [0, 360, 181, -90000, 0, 128, 90000, 359000, 1000, 1000, 64, 0, 0]


@pytest.fixture
def rotated():
    """Provide the rotated reference grid."""
    return GridDescriptor(REFERENCE)


def test_shape_preserved(rotated):
    """Test outputs keep the shape of the requested points."""
    x = np.array([[1.0, 50.5, 100.0], [200.0, 250.0, 12.25]])
    y = np.array([[1.0, 20.0, 100.5], [150.0, 200.0, 7.75]])
    result = transform(rotated, TransformRequest.from_grid(x, y))

    for name in ('x', 'y', 'lon', 'lat', 'crot', 'srot', 'xlon', 'xlat', 'ylon', 'ylat',
                 'area', 'valid'):
        assert getattr(result, name).shape == (2, 3)
    assert result.count == 6
    assert result.direction == Direction.grid_to_earth


def test_scalar_request(rotated):
    """Test single points are handled as one element arrays."""
    result = transform(rotated, TransformRequest.from_earth(-106.0, 54.0))

    assert result.x.shape == (1,)
    np.testing.assert_allclose(result.x, [126.0], rtol=0, atol=0.01)
    np.testing.assert_allclose(result.y, [101.0], rtol=0, atol=0.01)


def test_shape_mismatch():
    """Test mismatched coordinate shapes are rejected."""
    with pytest.raises(ValueError, match='do not match'):
        TransformRequest.from_grid([1, 2, 3], [1, 2])


def test_bad_direction():
    """Test an unknown direction is rejected."""
    with pytest.raises(ValueError):
        TransformRequest([1], [1], direction=0)


@pytest.mark.parametrize('fill', [np.nan, np.inf])
def test_nonfinite_fill(fill):
    """Test a fill value that cannot be compared is rejected."""
    with pytest.raises(ValueError, match='finite'):
        TransformRequest.from_grid([1], [1], fill=fill)


def test_optional_outputs(rotated):
    """Test outputs that are not requested are not calculated."""
    request = TransformRequest.from_grid([1, 2], [1, 2], rotation=False, map_factors=False)
    result = transform(rotated, request)

    for name in ('crot', 'srot', 'xlon', 'xlat', 'ylon', 'ylat', 'area'):
        assert getattr(result, name) is None
    assert result.count == 2
    with pytest.raises(ValueError, match='not requested'):
        result.rotate_vectors([1, 1], [0, 0])


def test_order_independent(rotated):
    """Test each point is transformed independently of the others."""
    rng = np.random.default_rng(20250101)
    x = rng.uniform(-5, 260, 50)
    y = rng.uniform(-5, 210, 50)
    order = rng.permutation(50)

    result = transform(rotated, TransformRequest.from_grid(x, y, fill=FILL))
    shuffled = transform(rotated, TransformRequest.from_grid(x[order], y[order], fill=FILL))

    for name in ('lon', 'lat', 'crot', 'srot', 'xlon', 'xlat', 'ylon', 'ylat', 'area',
                 'valid'):
        np.testing.assert_allclose(getattr(result, name)[order], getattr(shuffled, name),
                                   rtol=1e-13, atol=1e-12)


def test_mixed_validity(rotated):
    """Test invalid points are filled without affecting valid ones."""
    x = np.array([1.0, 1000.0, 10.0, -3.0])
    y = np.array([1.0, 10.0, 10.0, 10.0])
    result = transform(rotated, TransformRequest.from_grid(x, y, fill=FILL))

    assert result.count == 2
    np.testing.assert_array_equal(result.valid, [True, False, True, False])
    np.testing.assert_array_equal(result.x, x)
    for name in ('lon', 'lat', 'crot', 'srot', 'xlon', 'xlat', 'ylon', 'ylat', 'area'):
        values = getattr(result, name)
        np.testing.assert_array_equal(values[~result.valid], FILL)
        assert np.all(values[result.valid] != FILL)


def test_earth_invalid_latitude(rotated):
    """Test latitudes off the globe cannot be located on the grid."""
    result = transform(rotated, TransformRequest.from_earth([-106.0, -106.0], [54.0, 95.0],
                                                            fill=FILL))

    np.testing.assert_array_equal(result.valid, [True, False])
    assert result.x[1] == FILL
    assert result.y[1] == FILL
    assert result.lat[1] == 95.0


def test_rotate_vectors_round_trip(rotated):
    """Test rotating to earth and back recovers grid-relative vectors."""
    result = transform(rotated, TransformRequest.full_grid(rotated, fill=FILL))
    rng = np.random.default_rng(7)
    u = rng.normal(0, 10, rotated.shape)
    v = rng.normal(0, 10, rotated.shape)

    ue, ve = result.rotate_vectors(u, v)
    ug, vg = result.rotate_vectors(ue, ve, to_earth=False)

    np.testing.assert_allclose(np.hypot(ue, ve), np.hypot(u, v), rtol=1e-12)
    np.testing.assert_allclose(ug, u, atol=1e-12)
    np.testing.assert_allclose(vg, v, atol=1e-12)


def test_rotate_vectors_direction():
    """Test the sense of the vector rotation."""
    ue, ve = rotate_vectors([1.0], [0.0], [0.0], [1.0])
    np.testing.assert_allclose(ue, [0.0], atol=1e-15)
    np.testing.assert_allclose(ve, [-1.0])

    ug, vg = rotate_vectors(ue, ve, [0.0], [1.0], to_earth=False)
    np.testing.assert_allclose(ug, [1.0])
    np.testing.assert_allclose(vg, [0.0], atol=1e-15)


def test_rotate_vectors_fill():
    """Test missing values carry through vector rotation."""
    ue, ve = rotate_vectors([FILL, 3.0, 3.0], [1.0, 4.0, 4.0], [1.0, 1.0, FILL],
                            [0.0, 0.0, FILL], fill=FILL)
    np.testing.assert_array_equal(ue, [FILL, 3.0, FILL])
    np.testing.assert_array_equal(ve, [FILL, 4.0, FILL])


def test_rotate_vectors_unrotated_grid():
    """Test vectors on unrotated grids are left alone."""
    descriptor = GridDescriptor(LATLON)
    result = transform(descriptor, TransformRequest.from_grid([1, 100, 360], [1, 91, 181]))

    ue, ve = result.rotate_vectors([1.0, -2.0, 3.0], [4.0, 5.0, -6.0])
    np.testing.assert_array_equal(ue, [1.0, -2.0, 3.0])
    np.testing.assert_array_equal(ve, [4.0, 5.0, -6.0])


def test_to_xarray_grid(rotated):
    """Test conversion of a full grid transform to xarray."""
    result = transform(rotated, TransformRequest.full_grid(rotated))
    ds = result.to_xarray()

    assert ds['lon'].dims == ('y', 'x')
    assert ds['lon'].shape == rotated.shape
    assert ds['lat'].attrs['units'] == 'degrees_north'
    assert ds.attrs['grid_type'] == 'rotated_latlon'
    assert ds.attrs['direction'] == 'grid_to_earth'
    assert ds.attrs['count'] == rotated.npts
    assert 'grid_mapping_name' in ds.attrs or 'crs_wkt' in ds.attrs
    np.testing.assert_allclose(ds['grid_x'].values, result.x)


def test_to_xarray_masked(rotated):
    """Test invalid points become missing in xarray output."""
    result = transform(rotated, TransformRequest.from_earth([-106.0, 60.0], [54.0, -60.0],
                                                            fill=FILL))
    ds = result.to_xarray()

    assert ds['grid_x'].dims == ('point',)
    assert np.isnan(ds['grid_x'].values[1])
    assert np.isnan(ds['area'].values[1])
    assert ds['lon'].values[1] == 60.0
    np.testing.assert_allclose(ds['grid_x'].values[0], 126.0, rtol=0, atol=0.01)


def test_to_dataframe(rotated):
    """Test conversion to a table of points."""
    result = transform(rotated, TransformRequest.from_grid([1, 1000], [1, 1], fill=FILL,
                                                           map_factors=False))
    df = result.to_dataframe()

    assert list(df.columns) == ['x', 'y', 'lon', 'lat', 'crot', 'srot', 'valid']
    assert len(df) == 2
    assert df['valid'].tolist() == [True, False]
    assert df['lon'].iloc[1] == FILL


def test_missing_handler(rotated, monkeypatch):
    """Test grid types without a handler fail loudly."""
    monkeypatch.delitem(projections.HANDLERS, GridType.rotated_latlon)
    with pytest.raises(RuntimeError, match='No projection handler'):
        transform(rotated, TransformRequest.from_grid([1], [1]))

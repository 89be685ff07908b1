# Copyright (c) 2021 Nathan Wendt.
# Distributed under the terms of the BSD 3-Clause License.
# SPDX-License-Identifier: BSD-3-Clause
"""Tools for navigating NWP grids described by grid description sections."""

from .common import (Direction, GridType, InvalidGridDescription, ProjectionCenter,
                     ResolutionFlags, ScanMode)
from .engine import rotate_vectors, transform, TransformRequest, TransformResult
from .gds import GridDescriptor

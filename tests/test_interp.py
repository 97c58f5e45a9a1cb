import logging

import numpy as np
import pytest

from lidiag.interp import cells_to_vertices
from lidiag.mesh import Mesh


def _make_triangle_mesh(kite_areas, cells_on_vertex=None):
    kite_areas = np.atleast_2d(np.asarray(kite_areas, dtype=float))
    if cells_on_vertex is None:
        cells_on_vertex = np.tile([0, 1, 2], (kite_areas.shape[0], 1))
    return Mesh(
        cells_on_edge=np.array([[0, 1], [1, 2], [2, 0]]),
        cells_on_vertex=cells_on_vertex,
        kite_areas_on_vertex=kite_areas,
        bed_topography=np.zeros(3),
        layer_thickness_fractions=np.array([1.0]),
    )


def test_barycentric_weights():
    a = np.array([1.0, 2.0, 3.0])
    mesh = _make_triangle_mesh(a)
    field = np.array([10.0, 20.0, 40.0])

    result = cells_to_vertices(mesh, field)

    weights = np.array([0.5 * (a.sum() - a[i]) for i in range(3)])
    expected = (weights * field).sum() / a.sum()
    assert result[0] == pytest.approx(expected)


def test_constant_field_is_preserved_for_degree_three():
    mesh = _make_triangle_mesh([[0.3, 1.7, 2.2], [1.0, 1.0, 1.0]])
    result = cells_to_vertices(mesh, np.full(3, 7.5))
    np.testing.assert_allclose(result, [7.5, 7.5])


def test_missing_cell_contributes_zero():
    mesh = _make_triangle_mesh(
        [[1.0, 1.0, 1.0]], cells_on_vertex=np.array([[0, 1, -1]])
    )
    result = cells_to_vertices(mesh, np.array([3.0, 6.0, 1000.0]))
    assert result[0] == pytest.approx((3.0 + 6.0) * 1.0 / 3.0)


def test_zero_kite_area_falls_back_to_average(caplog):
    mesh = _make_triangle_mesh(
        [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 1.0, 1.0]],
        cells_on_vertex=np.array([[0, 1, 2], [-1, -1, -1], [0, 1, 2]]),
    )
    with caplog.at_level(logging.WARNING):
        result = cells_to_vertices(mesh, np.array([1.0, 2.0, 6.0]))

    assert np.all(np.isfinite(result))
    np.testing.assert_allclose(result, [3.0, 0.0, 3.0])
    assert 'zero total kite area' in caplog.text

import numpy as np

from lidiag.config import DiagnosticConfig
from lidiag.edge import (
    calculate_layer_thickness_edge,
    upwind_layer_thickness_edge,
)
from lidiag.state import StateSnapshot


def test_upwind_picks_cell_by_velocity_sign():
    cells_on_edge = np.array([[0, 1], [1, 2]])
    layer_thickness = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
    normal_velocity = np.array([[1.5, -2.0], [-0.1, 3.0]])

    result = upwind_layer_thickness_edge(
        cells_on_edge, layer_thickness, normal_velocity
    )

    np.testing.assert_allclose(result, [[1.0, 4.0], [5.0, 4.0]])


def test_zero_velocity_uses_first_cell():
    cells_on_edge = np.array([[0, 1]])
    layer_thickness = np.array([[1.0], [9.0]])
    result = upwind_layer_thickness_edge(
        cells_on_edge, layer_thickness, np.array([[0.0]])
    )
    np.testing.assert_allclose(result, [[1.0]])


def test_missing_cell_counts_as_no_ice():
    cells_on_edge = np.array([[0, -1], [-1, 0]])
    layer_thickness = np.array([[7.0]])
    normal_velocity = np.array([[-1.0], [-1.0]])
    result = upwind_layer_thickness_edge(
        cells_on_edge, layer_thickness, normal_velocity
    )
    np.testing.assert_allclose(result, [[0.0], [7.0]])


def test_only_first_order_advection_updates_edges(strip_mesh):
    mesh = strip_mesh(n_cells=3, fractions=(0.5, 0.5))
    state = StateSnapshot.zeros(mesh)
    state.layer_thickness[:] = [[1.0, 1.0], [2.0, 2.0], [3.0, 3.0]]
    state.normal_velocity[:] = [[1.0, 1.0], [-1.0, -1.0]]
    state.layer_thickness_edge[:] = -99.0

    err = calculate_layer_thickness_edge(
        mesh, state, DiagnosticConfig(thickness_advection='fct')
    )
    assert err == 0
    assert np.all(state.layer_thickness_edge == -99.0)

    err = calculate_layer_thickness_edge(
        mesh, state, DiagnosticConfig(thickness_advection='fo')
    )
    assert err == 0
    np.testing.assert_allclose(
        state.layer_thickness_edge, [[1.0, 1.0], [3.0, 3.0]]
    )

import logging

import numpy as np

__all__ = ['upwind_layer_thickness_edge', 'calculate_layer_thickness_edge']


def upwind_layer_thickness_edge(
    cells_on_edge, layer_thickness, normal_velocity
):
    """
    First-order upwind layer thickness on edges.

    Positive normal velocity flows from the first to the second cell on an
    edge.  The edge value is ``max(s * h1, -s * h2)`` with
    ``s = copysign(1, u)``, which is the upwind cell's thickness for
    non-negative thickness; at ``u = +0`` the first cell is used.  A missing
    cell (index -1) counts as zero thickness.

    Parameters
    ----------
    cells_on_edge : numpy.ndarray
        The two cells on each edge, shape (nEdges, 2).

    layer_thickness : numpy.ndarray
        Layer thickness on cells, shape (nCells, nVertLevels).

    normal_velocity : numpy.ndarray
        Normal velocity on edges, shape (nEdges, nVertLevels).

    Returns
    -------
    layer_thickness_edge : numpy.ndarray
        Layer thickness on edges, shape (nEdges, nVertLevels).
    """
    h1 = _thickness_on_cells(layer_thickness, cells_on_edge[:, 0])
    h2 = _thickness_on_cells(layer_thickness, cells_on_edge[:, 1])
    vel_sign = np.copysign(1.0, normal_velocity)
    return np.maximum(vel_sign * h1, -vel_sign * h2)


def calculate_layer_thickness_edge(mesh, state, config, logger=None):
    """
    Compute ``layer_thickness_edge`` in ``state`` if thickness advection is
    first-order upwind (``'fo'``); otherwise leave it unchanged.

    Parameters
    ----------
    mesh : lidiag.mesh.Mesh
        The mesh block.

    state : lidiag.state.StateSnapshot
        The state with updated layer thickness and normal velocity.

    config : lidiag.config.DiagnosticConfig
        Options providing the thickness advection scheme.

    logger : logging.Logger, optional
        Logger for the step.

    Returns
    -------
    err : int
        Always 0.
    """
    log = logger or logging.getLogger(__name__)
    if config.thickness_advection != 'fo':
        log.debug(
            'layerThicknessEdge not calculated for thickness advection '
            f"'{config.thickness_advection}'"
        )
        return 0

    state.layer_thickness_edge[...] = upwind_layer_thickness_edge(
        mesh.cells_on_edge, state.layer_thickness, state.normal_velocity
    )
    return 0


def _thickness_on_cells(layer_thickness, cells):
    valid = cells >= 0
    values = layer_thickness[np.where(valid, cells, 0), :]
    return np.where(valid[:, np.newaxis], values, 0.0)

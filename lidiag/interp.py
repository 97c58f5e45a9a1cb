import logging

import numpy as np

__all__ = ['cells_to_vertices']


def cells_to_vertices(mesh, field_cells, logger=None):
    """
    Interpolate a scalar field from cells to vertices with barycentric
    weights built from the kite areas of the cells around each vertex.

    The weight of cell ``i`` at a vertex is half the sum of the kite areas
    of the other cells on that vertex, and the weighted sum is divided by
    the total kite area.  A missing cell (index -1) contributes a field
    value of zero.  Vertices with no kite area (degenerate vertices) get the
    plain average of their valid cells, or zero if they have none.

    Parameters
    ----------
    mesh : lidiag.mesh.Mesh
        The mesh block.

    field_cells : numpy.ndarray
        The field on cells, shape (nCells,).

    logger : logging.Logger, optional
        Logger used to report degenerate vertices.

    Returns
    -------
    field_vertices : numpy.ndarray
        The field on vertices, shape (nVertices,).
    """
    field_cells = np.asarray(field_cells, dtype=float)
    cells_on_vertex = mesh.cells_on_vertex
    kite_areas = mesh.kite_areas_on_vertex

    valid = cells_on_vertex >= 0
    values = np.where(
        valid, field_cells[np.where(valid, cells_on_vertex, 0)], 0.0
    )

    total_area = kite_areas.sum(axis=1)
    bary_weights = 0.5 * (total_area[:, np.newaxis] - kite_areas)
    accum = (bary_weights * values).sum(axis=1)

    degenerate = total_area == 0.0
    field_vertices = np.zeros(mesh.n_vertices)
    regular = ~degenerate
    field_vertices[regular] = accum[regular] / total_area[regular]

    if np.any(degenerate):
        log = logger or logging.getLogger(__name__)
        log.warning(
            f'{np.count_nonzero(degenerate)} vertices have zero total kite '
            'area; using the average of their cells'
        )
        count = valid[degenerate].sum(axis=1)
        total = values[degenerate].sum(axis=1)
        field_vertices[degenerate] = np.where(
            count > 0, total / np.maximum(count, 1), 0.0
        )

    return field_vertices

import logging

import numpy as np

from lidiag.interp import cells_to_vertices
from lidiag.mask import is_floating_ice

__all__ = ['compute_lower_surface', 'update_surfaces']


def compute_lower_surface(thickness, cell_mask, bed_topography, config):
    """
    Compute the elevation of the lower ice surface.

    Floating ice sits at its flotation depth below sea level; grounded ice
    and ice-free cells sit on the bed.

    Parameters
    ----------
    thickness : numpy.ndarray
        Ice thickness (m), shape (nCells,).

    cell_mask : numpy.ndarray
        Cell mask, shape (nCells,).

    bed_topography : numpy.ndarray
        Bed elevation (m), shape (nCells,).

    config : lidiag.config.DiagnosticConfig
        Options providing sea level and densities.

    Returns
    -------
    lower_surface : numpy.ndarray
        Lower surface elevation (m), shape (nCells,).
    """
    return np.where(
        is_floating_ice(cell_mask),
        config.sea_level - thickness * config.density_ratio,
        bed_topography,
    )


def update_surfaces(mesh, state, config, logger=None):
    """
    Update the lower and upper surface on cells and the upper surface on
    vertices.

    A lower surface below the bed is an error for that cell; it is logged
    and reported in the returned flag, and the remaining cells are still
    updated.

    Parameters
    ----------
    mesh : lidiag.mesh.Mesh
        The mesh block.

    state : lidiag.state.StateSnapshot
        The state to update.

    config : lidiag.config.DiagnosticConfig
        Options providing sea level and densities.

    logger : logging.Logger, optional
        Logger for per-cell errors.

    Returns
    -------
    err : int
        0 if all lower surfaces are at or above the bed, 1 otherwise.
    """
    log = logger or logging.getLogger(__name__)
    err = 0

    state.lower_surface[:] = compute_lower_surface(
        state.thickness, state.cell_mask, mesh.bed_topography, config
    )

    below_bed = np.flatnonzero(state.lower_surface < mesh.bed_topography)
    for cell in below_bed:
        log.error(f'lowerSurface less than bedTopography at cell: {cell}')
    if below_bed.size > 0:
        err = 1

    state.upper_surface[:] = state.lower_surface + state.thickness

    # the outer halo may be wrong here but the owned vertices are not
    state.upper_surface_vertex[:] = cells_to_vertices(
        mesh, state.upper_surface, logger=log
    )
    return err

import logging

import numpy as np

__all__ = [
    'VelocitySolverBase',
    'PrescribedVelocity',
    'get_velocity_solver',
    'reconstruct_velocity',
]


class VelocitySolverBase:
    """
    A base class for velocity solvers.

    Attributes
    ----------
    config : lidiag.config.DiagnosticConfig
        Options for the diagnostic solve.

    logger : logging.Logger
        Logger for the class.
    """

    def __init__(self, config, logger=None):
        """
        Create a velocity solver.

        Parameters
        ----------
        config : lidiag.config.DiagnosticConfig
            Options for the diagnostic solve.
        logger : logging.Logger, optional
            Logger for the class.
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def solve(self, mesh, state):
        """
        Solve for ``normal_velocity`` in ``state``.  The normal velocity
        already in the state may be used as an initial guess.

        Parameters
        ----------
        mesh : lidiag.mesh.Mesh
            The mesh block.
        state : lidiag.state.StateSnapshot
            The state to update.

        Returns
        -------
        err : int
            0 on success, 1 on error.
        """
        raise NotImplementedError('solve must be implemented in a subclass')


class PrescribedVelocity(VelocitySolverBase):
    """
    A velocity "solver" that keeps the normal velocity already in the state.
    """

    def solve(self, mesh, state):
        self.logger.debug('Using prescribed normal velocity')
        return 0


def get_velocity_solver(config, logger=None):
    """
    Get the velocity solver selected by ``velocity_solver`` in the config.

    Parameters
    ----------
    config : lidiag.config.DiagnosticConfig
        Options for the diagnostic solve.
    logger : logging.Logger, optional
        Logger for the solver.

    Returns
    -------
    solver : lidiag.velocity.VelocitySolverBase
        The velocity solver.
    """
    name = config.velocity_solver.lower()
    if name == 'prescribed':
        return PrescribedVelocity(config, logger)
    raise ValueError(f'Unknown velocity solver: {config.velocity_solver}')


def reconstruct_velocity(mesh, normal_velocity):
    """
    Reconstruct cell-centred velocity from normal velocity on edges.

    Uses the mesh's reconstruction coefficients: the Cartesian velocity of a
    cell is the coefficient-weighted sum of the normal velocity on its
    edges.  On a sphere, zonal and meridional components are found by
    rotating with the cell's latitude and longitude; on a plane they are the
    x and y components.

    Parameters
    ----------
    mesh : lidiag.mesh.Mesh
        The mesh block, with ``coeffs_reconstruct``, ``edges_on_cell`` and
        ``n_edges_on_cell``.

    normal_velocity : numpy.ndarray
        Normal velocity, shape (nEdges, nVertLevels).

    Returns
    -------
    u_x, u_y, u_z, u_zonal, u_meridional : numpy.ndarray
        Reconstructed velocity components, each shape (nCells, nVertLevels).
    """
    if mesh.coeffs_reconstruct is None or mesh.edges_on_cell is None:
        raise ValueError(
            'Velocity reconstruction requires coeffs_reconstruct and '
            'edges_on_cell in the mesh'
        )
    edges_on_cell = mesh.edges_on_cell
    valid = edges_on_cell >= 0
    if mesh.n_edges_on_cell is not None:
        slots = np.arange(edges_on_cell.shape[1])[np.newaxis, :]
        valid = np.logical_and(
            valid, slots < mesh.n_edges_on_cell[:, np.newaxis]
        )

    # normal velocity on the edges of each cell, (nCells, maxEdges, nLevels)
    u_edges = np.where(
        valid[:, :, np.newaxis],
        normal_velocity[np.where(valid, edges_on_cell, 0), :],
        0.0,
    )
    coeffs = mesh.coeffs_reconstruct
    u_x = np.einsum('ce,cek->ck', coeffs[:, :, 0], u_edges)
    u_y = np.einsum('ce,cek->ck', coeffs[:, :, 1], u_edges)
    u_z = np.einsum('ce,cek->ck', coeffs[:, :, 2], u_edges)

    if mesh.on_a_sphere:
        if mesh.lat_cell is None or mesh.lon_cell is None:
            raise ValueError(
                'Velocity reconstruction on a sphere requires lat_cell and '
                'lon_cell in the mesh'
            )
        clat = np.cos(mesh.lat_cell)[:, np.newaxis]
        slat = np.sin(mesh.lat_cell)[:, np.newaxis]
        clon = np.cos(mesh.lon_cell)[:, np.newaxis]
        slon = np.sin(mesh.lon_cell)[:, np.newaxis]
        u_zonal = -u_x * slon + u_y * clon
        u_meridional = -(u_x * clon + u_y * slon) * slat + u_z * clat
    else:
        u_zonal = u_x.copy()
        u_meridional = u_y.copy()

    return u_x, u_y, u_z, u_zonal, u_meridional

"""
Diagnostic solve of the land-ice state.

Computes the diagnostic variables of a domain from its prognostic ones
(thickness, layer thickness and tracers) in three phases:

    1. before velocity: masks, lower/upper surface, vertical remapping of
       layer thickness and tracers onto the sigma layers;

    2. velocity (optional): the velocity solve;

    3. after velocity: reconstructed cell-centred velocity and first-order
       upwind layer thickness on edges.

Halo exchanges sit between a phase that produces a field and any phase that
reads that field from a neighbouring cell: masks after they are classified,
normal velocity after the velocity solve and layer thickness on edges at the
end.  Blocks within a phase are independent and may run on separate
threads.

Error flags from every block and step are OR'd together; all blocks run all
steps even after an error.  A non-zero result is a request to abort the
run, which is up to the caller.
"""

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from lidiag.edge import calculate_layer_thickness_edge
from lidiag.mask import get_mask_classifier
from lidiag.surface import update_surfaces
from lidiag.velocity import get_velocity_solver, reconstruct_velocity
from lidiag.vert.remap import vertical_remap

__all__ = [
    'DiagnosticPhase',
    'DiagnosticSolver',
    'DiagnosticsFailed',
    'run_diagnostics',
]

MASK_FIELDS = ('cell_mask', 'edge_mask', 'vertex_mask')


class DiagnosticPhase(enum.Enum):
    PRE_VELOCITY = 'pre_velocity'
    VELOCITY = 'velocity'
    POST_VELOCITY = 'post_velocity'
    DONE = 'done'


@dataclass
class DiagnosticsFailed(Exception):
    """Raised by drivers when the diagnostic solve reports an error."""

    err: int
    time_level: int

    def __str__(self) -> str:
        return (
            f'An error has occurred in the diagnostic solve (flag '
            f'{self.err}) at time level {self.time_level}. Aborting...'
        )


class DiagnosticSolver:
    """
    Sequences the diagnostic solve over the blocks of a domain.

    Attributes
    ----------
    config : lidiag.config.DiagnosticConfig
        Options for the diagnostic solve.

    halo : lidiag.halo.HaloExchangeBase
        The halo exchange between blocks.

    mask_classifier : lidiag.mask.MaskClassifierBase
        Computes cell, edge and vertex masks.

    velocity_solver : lidiag.velocity.VelocitySolverBase
        Computes normal velocity.

    phase : lidiag.diagnostics.DiagnosticPhase or None
        The phase currently (or last) being run.

    logger : logging.Logger
        Logger for the solve.
    """

    def __init__(
        self,
        config,
        halo,
        mask_classifier=None,
        velocity_solver=None,
        logger=None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config
        self.halo = halo
        if mask_classifier is None:
            mask_classifier = get_mask_classifier(config, self.logger)
        if velocity_solver is None:
            velocity_solver = get_velocity_solver(config, self.logger)
        self.mask_classifier = mask_classifier
        self.velocity_solver = velocity_solver
        self.phase = None

    def run(self, domain, time_level=0, solve_velocity=True):
        """
        Run the full diagnostic solve on a domain.

        If the velocity solver needs an initial guess, it is taken from the
        normal velocity at ``time_level``.

        Parameters
        ----------
        domain : lidiag.domain.Domain
            The blocks to update in place.

        time_level : int, optional
            The time level of the state to read and update.

        solve_velocity : bool, optional
            Whether to solve for velocity.

        Returns
        -------
        err : int
            The OR of the error flags of every block and step.
        """
        err = 0

        err |= self.solve_before_velocity(domain, time_level)

        if solve_velocity:
            err |= self.solve_velocity(domain, time_level)

        err |= self.solve_after_velocity(domain, time_level)

        self.phase = DiagnosticPhase.DONE
        if err != 0:
            self.logger.error(
                'An error has occurred in the diagnostic solve. Aborting...'
            )
        return err

    def solve_before_velocity(self, domain, time_level=0):
        """
        Classify masks, update surfaces and remap layers on every block.
        """
        self.phase = DiagnosticPhase.PRE_VELOCITY
        self.logger.info('Computing diagnostic variables before velocity')

        # masks are needed before the lower surface (floating ice)
        err = self._for_each_block(domain, time_level, self._calculate_mask)

        # the outermost halo of masks needs neighbour information
        for field_name in MASK_FIELDS:
            self.halo.exchange(domain, field_name, time_level)

        err |= self._for_each_block(
            domain, time_level, self._update_geometry
        )
        if err != 0:
            self.logger.error(
                'An error has occurred in the diagnostic solve before '
                'velocity.'
            )
        return err

    def solve_velocity(self, domain, time_level=0):
        """
        Solve for velocity on every block and update its halo.
        """
        self.phase = DiagnosticPhase.VELOCITY
        self.logger.info('Solving for velocity')
        err = self._for_each_block(domain, time_level, self._solve_velocity)
        self.halo.exchange(domain, 'normal_velocity', time_level)
        return err

    def solve_after_velocity(self, domain, time_level=0):
        """
        Reconstruct cell-centred velocity and compute layer thickness on
        edges on every block.

        This runs even without a velocity solve, since normal velocity may
        come from a restart or the previous step.
        """
        self.phase = DiagnosticPhase.POST_VELOCITY
        self.logger.info('Computing diagnostic variables after velocity')
        err = self._for_each_block(
            domain, time_level, self._after_velocity
        )
        # the upwind cell of an outermost-halo edge may be on another block
        self.halo.exchange(domain, 'layer_thickness_edge', time_level)
        return err

    def _calculate_mask(self, block, state):
        return self.mask_classifier.calculate_mask(block.mesh, state)

    def _update_geometry(self, block, state):
        mesh = block.mesh
        err = update_surfaces(mesh, state, self.config, logger=self.logger)
        err |= vertical_remap(
            state.thickness,
            state.cell_mask,
            mesh,
            state.layer_thickness,
            state.tracers,
        )
        return err

    def _solve_velocity(self, block, state):
        return self.velocity_solver.solve(block.mesh, state)

    def _after_velocity(self, block, state):
        mesh = block.mesh
        if mesh.coeffs_reconstruct is not None:
            u_x, u_y, u_z, u_zonal, u_meridional = reconstruct_velocity(
                mesh, state.normal_velocity
            )
            state.u_reconstruct_x[...] = u_x
            state.u_reconstruct_y[...] = u_y
            state.u_reconstruct_z[...] = u_z
            state.u_reconstruct_zonal[...] = u_zonal
            state.u_reconstruct_meridional[...] = u_meridional
        else:
            self.logger.debug(
                f'Block {block.block_id} has no reconstruction '
                'coefficients; skipping velocity reconstruction'
            )
        return calculate_layer_thickness_edge(
            mesh, state, self.config, logger=self.logger
        )

    def _for_each_block(self, domain, time_level, func):
        """
        Apply ``func(block, state)`` to every block and OR the error flags.

        Returns only after all blocks are done, so a halo exchange can
        follow safely.
        """
        states = [block.state(time_level) for block in domain]
        num_workers = min(self.config.num_workers, len(domain))
        if num_workers <= 1:
            flags = [
                func(block, state) for block, state in zip(domain, states)
            ]
        else:
            with ThreadPoolExecutor(max_workers=num_workers) as ex:
                flags = list(ex.map(func, domain, states))
        err = 0
        for block, flag in zip(domain, flags):
            if flag != 0:
                self.logger.warning(
                    f'Block {block.block_id} reported error flag {flag} in '
                    f'phase {self.phase.value}'
                )
            err |= flag
        return err


def run_diagnostics(
    domain,
    time_level,
    solve_velocity,
    config,
    halo,
    mask_classifier=None,
    velocity_solver=None,
    logger=None,
):
    """
    Run the diagnostic solve on a domain.

    Parameters
    ----------
    domain : lidiag.domain.Domain
        The blocks to update in place.

    time_level : int
        The time level of the state to read and update.

    solve_velocity : bool
        Whether to solve for velocity.

    config : lidiag.config.DiagnosticConfig
        Options for the diagnostic solve.

    halo : lidiag.halo.HaloExchangeBase
        The halo exchange between blocks.

    mask_classifier : lidiag.mask.MaskClassifierBase, optional
        The mask classifier; by default from :func:`get_mask_classifier`.

    velocity_solver : lidiag.velocity.VelocitySolverBase, optional
        The velocity solver; by default from :func:`get_velocity_solver`.

    logger : logging.Logger, optional
        Logger for the solve.

    Returns
    -------
    err : int
        0 on success; non-zero requests that the run be aborted.
    """
    solver = DiagnosticSolver(
        config,
        halo,
        mask_classifier=mask_classifier,
        velocity_solver=velocity_solver,
        logger=logger,
    )
    return solver.run(domain, time_level, solve_velocity)

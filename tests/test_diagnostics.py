import logging

import numpy as np
import pytest

from lidiag.config import DiagnosticConfig
from lidiag.diagnostics import (
    DiagnosticPhase,
    DiagnosticSolver,
    DiagnosticsFailed,
    run_diagnostics,
)
from lidiag.domain import Block, Domain
from lidiag.halo import BlockHaloExchange, NoHaloExchange
from lidiag.mask import FLOATING, MARGIN, FlotationMaskClassifier, is_ice
from lidiag.state import FIELD_LOCATIONS
from lidiag.velocity import PrescribedVelocity

SPLIT = 4

_IDS = {
    'cell': ('index_to_cell_id', 'n_cells_solve'),
    'edge': ('index_to_edge_id', 'n_edges_solve'),
    'vertex': ('index_to_vertex_id', 'n_vertices_solve'),
}

# fields that are exchanged, so halo copies must match the owners
_EXCHANGED = (
    'cell_mask',
    'edge_mask',
    'vertex_mask',
    'normal_velocity',
    'layer_thickness_edge',
)


class RecordingHalo(BlockHaloExchange):
    def __init__(self, domain, events):
        super().__init__(domain)
        self.events = events

    def exchange(self, domain, field_name, time_level=0):
        self.events.append(f'exchange {field_name}')
        super().exchange(domain, field_name, time_level)


class RecordingClassifier(FlotationMaskClassifier):
    def __init__(self, config, events, err=0):
        super().__init__(config)
        self.events = events
        self.err = err

    def calculate_mask(self, mesh, state):
        self.events.append('mask')
        super().calculate_mask(mesh, state)
        return self.err


class ForcedFloatingClassifier(FlotationMaskClassifier):
    """Marks all ice as floating, even where it should be grounded."""

    def calculate_mask(self, mesh, state):
        super().calculate_mask(mesh, state)
        state.cell_mask[is_ice(state.cell_mask)] |= FLOATING
        return 0


class RecordingVelocity(PrescribedVelocity):
    def __init__(self, config, events, err=0):
        super().__init__(config)
        self.events = events
        self.err = err

    def solve(self, mesh, state):
        self.events.append('velocity')
        return self.err


def _global_fields(mesh, rng):
    n_levels = mesh.n_vert_levels
    thickness = np.array([0.0, 120.0, 40.0, 900.0, 300.0, 0.0, 10.0, 0.0])
    weights = rng.uniform(0.1, 1.0, (mesh.n_cells, n_levels))
    layer_thickness = (
        thickness[:, np.newaxis] * weights / weights.sum(axis=1)[:, None]
    )
    return {
        'thickness': thickness,
        'layer_thickness': layer_thickness,
        'tracers': rng.uniform(-20.0, 0.0, (mesh.n_cells, n_levels, 2)),
        'normal_velocity': rng.uniform(-5.0, 5.0, (mesh.n_edges, n_levels)),
    }


@pytest.fixture
def domains(strip_mesh, two_block_domain, scatter_field):
    """A global single-block domain and the same mesh split in two."""
    bed = [-100.0, -100.0, -500.0, -500.0, -500.0, -1000.0, -1000.0, -1e3]
    mesh = strip_mesh(n_cells=8, fractions=(0.2, 0.3, 0.5), bed=bed)
    fields = _global_fields(mesh, np.random.default_rng(2024))

    global_domain = Domain(blocks=[Block.from_mesh(mesh, n_tracers=2)])
    split_domain = two_block_domain(mesh, SPLIT, n_tracers=2)
    for name, values in fields.items():
        scatter_field(global_domain, name, values)
        scatter_field(split_domain, name, values)
    return global_domain, split_domain


def _assert_matches_global(split_domain, global_domain):
    global_state = global_domain[0].state(0)
    for block in split_domain:
        state = block.state(0)
        for name, location in FIELD_LOCATIONS.items():
            ids_attr, n_solve_attr = _IDS[location]
            ids = getattr(block.mesh, ids_attr)
            if name not in _EXCHANGED:
                ids = ids[: getattr(block.mesh, n_solve_attr)]
            local = getattr(state, name)[: len(ids)]
            expected = getattr(global_state, name)[ids]
            np.testing.assert_allclose(
                local, expected, rtol=1e-12, atol=1e-12, err_msg=name
            )


def test_phases_and_exchanges_in_order(domains):
    _, domain = domains
    config = DiagnosticConfig()
    events = []
    solver = DiagnosticSolver(
        config,
        RecordingHalo(domain, events),
        mask_classifier=RecordingClassifier(config, events),
        velocity_solver=RecordingVelocity(config, events),
    )

    err = solver.run(domain, time_level=0, solve_velocity=True)

    assert err == 0
    assert events == [
        'mask',
        'mask',
        'exchange cell_mask',
        'exchange edge_mask',
        'exchange vertex_mask',
        'velocity',
        'velocity',
        'exchange normal_velocity',
        'exchange layer_thickness_edge',
    ]
    assert solver.phase == DiagnosticPhase.DONE


def test_velocity_solve_is_optional(domains):
    _, domain = domains
    config = DiagnosticConfig()
    events = []

    err = run_diagnostics(
        domain,
        0,
        False,
        config,
        RecordingHalo(domain, events),
        velocity_solver=RecordingVelocity(config, events),
    )

    assert err == 0
    assert 'velocity' not in events
    assert 'exchange normal_velocity' not in events
    assert events[-1] == 'exchange layer_thickness_edge'


def test_two_blocks_match_one_block(domains):
    global_domain, split_domain = domains
    config = DiagnosticConfig()

    err = run_diagnostics(global_domain, 0, True, config, NoHaloExchange())
    assert err == 0
    err = run_diagnostics(
        split_domain, 0, True, config, BlockHaloExchange(split_domain)
    )
    assert err == 0

    _assert_matches_global(split_domain, global_domain)


def test_margin_of_halo_cell_needs_exchange(domains):
    _, domain = domains
    config = DiagnosticConfig()
    block0 = domain[0]
    halo_cell = block0.mesh.n_cells_solve

    # cell SPLIT has ice but its neighbour SPLIT + 1 (not on block 0) has
    # none, so only the owner can tell it is on the margin
    FlotationMaskClassifier(config).calculate_mask(
        block0.mesh, block0.state(0)
    )
    assert block0.mesh.index_to_cell_id[halo_cell] == SPLIT
    assert not block0.state(0).cell_mask[halo_cell] & MARGIN

    run_diagnostics(domain, 0, False, config, BlockHaloExchange(domain))
    assert block0.state(0).cell_mask[halo_cell] & MARGIN


def test_threaded_blocks_match_serial(domains):
    _, serial_domain = domains
    threaded_domain = Domain(
        blocks=[
            Block(
                mesh=block.mesh,
                time_levels=[state.copy() for state in block.time_levels],
            )
            for block in serial_domain
        ]
    )

    run_diagnostics(
        serial_domain,
        0,
        True,
        DiagnosticConfig(num_workers=1),
        BlockHaloExchange(serial_domain),
    )
    run_diagnostics(
        threaded_domain,
        0,
        True,
        DiagnosticConfig(num_workers=2),
        BlockHaloExchange(threaded_domain),
    )

    for serial, threaded in zip(serial_domain, threaded_domain):
        for name in FIELD_LOCATIONS:
            np.testing.assert_array_equal(
                getattr(threaded.state(0), name),
                getattr(serial.state(0), name),
                err_msg=name,
            )


def test_error_flags_are_combined(domains, caplog):
    _, domain = domains
    config = DiagnosticConfig()

    # grounded ice forced to float sits below its bed (flag 1) and the
    # velocity solver fails (flag 2)
    with caplog.at_level(logging.WARNING):
        err = run_diagnostics(
            domain,
            0,
            True,
            config,
            BlockHaloExchange(domain),
            mask_classifier=ForcedFloatingClassifier(config),
            velocity_solver=RecordingVelocity(config, [], err=2),
        )

    assert err == 3
    assert 'Aborting' in caplog.text
    # every block still ran every step
    for block in domain:
        state = block.state(0)
        np.testing.assert_allclose(
            state.upper_surface, state.lower_surface + state.thickness
        )
        assert np.any(state.layer_thickness_edge != 0.0)


def test_mask_error_does_not_stop_other_blocks(domains):
    _, domain = domains
    config = DiagnosticConfig()
    events = []

    err = run_diagnostics(
        domain,
        0,
        True,
        config,
        RecordingHalo(domain, events),
        mask_classifier=RecordingClassifier(config, events, err=1),
    )

    assert err == 1
    assert events.count('mask') == len(domain)
    assert events[-1] == 'exchange layer_thickness_edge'


def test_diagnostics_failed_message():
    exc = DiagnosticsFailed(err=3, time_level=1)
    assert exc.err == 3
    assert 'flag 3' in str(exc)
    assert 'time level 1' in str(exc)

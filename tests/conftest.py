import numpy as np
import pytest

from lidiag.domain import Block, Domain
from lidiag.mesh import Mesh
from lidiag.state import FIELD_LOCATIONS


def make_strip_mesh(n_cells=6, fractions=(0.25, 0.25, 0.25, 0.25), bed=None):
    """
    A row of cells: edge ``e`` joins cells ``e`` and ``e + 1`` and vertex
    ``v`` sits between cells ``v - 1``, ``v`` and ``v + 1`` (missing cells
    past the ends have zero kite area).
    """
    n_edges = n_cells - 1
    cells_on_edge = np.array([[e, e + 1] for e in range(n_edges)])

    cells_on_vertex = np.array(
        [[v - 1, v, v + 1] for v in range(n_cells)], dtype=int
    )
    cells_on_vertex[cells_on_vertex >= n_cells] = -1
    kite_areas = np.where(cells_on_vertex >= 0, 1.0, 0.0)

    cells_on_cell = np.array([[c - 1, c + 1] for c in range(n_cells)])
    cells_on_cell[cells_on_cell >= n_cells] = -1
    edges_on_cell = np.array([[c - 1, c] for c in range(n_cells)])
    edges_on_cell[edges_on_cell >= n_edges] = -1

    if bed is None:
        bed = np.full(n_cells, -1000.0)

    # reconstruct x velocity as the mean of the normal velocity on the
    # two edges of each cell
    coeffs = np.zeros((n_cells, 2, 3))
    coeffs[:, :, 0] = 0.5

    return Mesh(
        cells_on_edge=cells_on_edge,
        cells_on_vertex=cells_on_vertex,
        kite_areas_on_vertex=kite_areas,
        bed_topography=np.asarray(bed, dtype=float),
        layer_thickness_fractions=np.array(fractions),
        cells_on_cell=cells_on_cell,
        edges_on_cell=edges_on_cell,
        n_edges_on_cell=np.full(n_cells, 2),
        coeffs_reconstruct=coeffs,
    )


def extract_block(
    mesh,
    cells,
    n_cells_solve,
    edges,
    n_edges_solve,
    vertices,
    n_vertices_solve,
):
    """
    Cut a block out of a global mesh.  ``cells`` (and ``edges``,
    ``vertices``) are global indices, owned elements first.
    """
    cell_map = {int(c): i for i, c in enumerate(cells)}
    edge_map = {int(e): i for i, e in enumerate(edges)}

    def _local(global_ids, mapping):
        out = np.full(global_ids.shape, -1, dtype=int)
        for index, global_id in np.ndenumerate(global_ids):
            out[index] = mapping.get(int(global_id), -1)
        return out

    cells = np.asarray(cells)
    edges = np.asarray(edges)
    vertices = np.asarray(vertices)
    return Mesh(
        cells_on_edge=_local(mesh.cells_on_edge[edges], cell_map),
        cells_on_vertex=_local(mesh.cells_on_vertex[vertices], cell_map),
        kite_areas_on_vertex=mesh.kite_areas_on_vertex[vertices],
        bed_topography=mesh.bed_topography[cells],
        layer_thickness_fractions=mesh.layer_thickness_fractions,
        cells_on_cell=_local(mesh.cells_on_cell[cells], cell_map),
        edges_on_cell=_local(mesh.edges_on_cell[cells], edge_map),
        n_edges_on_cell=mesh.n_edges_on_cell[cells],
        coeffs_reconstruct=mesh.coeffs_reconstruct[cells],
        n_cells_solve=n_cells_solve,
        n_edges_solve=n_edges_solve,
        n_vertices_solve=n_vertices_solve,
        index_to_cell_id=cells,
        index_to_edge_id=edges,
        index_to_vertex_id=vertices,
    )


def make_two_block_domain(mesh, split, n_tracers=1):
    """
    Split a strip mesh into two blocks at cell ``split`` with a one-cell
    halo on each side of the cut.
    """
    n_cells = mesh.n_cells
    n_edges = mesh.n_edges

    # block 0 owns cells [0, split) and edges/vertices below split
    block0 = extract_block(
        mesh,
        cells=list(range(split)) + [split],
        n_cells_solve=split,
        edges=list(range(split)),
        n_edges_solve=split,
        vertices=list(range(split)) + [split],
        n_vertices_solve=split,
    )
    block1 = extract_block(
        mesh,
        cells=list(range(split, n_cells)) + [split - 1],
        n_cells_solve=n_cells - split,
        edges=list(range(split, n_edges)) + [split - 1],
        n_edges_solve=n_edges - split,
        vertices=list(range(split, n_cells)) + [split - 1],
        n_vertices_solve=n_cells - split,
    )
    return Domain(
        blocks=[
            Block.from_mesh(block0, n_tracers=n_tracers),
            Block.from_mesh(block1, n_tracers=n_tracers),
        ]
    )


def scatter(domain, field_name, values, time_level=0):
    """Copy a global field into every block (owned and halo elements)."""
    location = FIELD_LOCATIONS[field_name]
    ids_attr = {
        'cell': 'index_to_cell_id',
        'edge': 'index_to_edge_id',
        'vertex': 'index_to_vertex_id',
    }[location]
    for block in domain:
        target = getattr(block.state(time_level), field_name)
        target[...] = np.asarray(values)[getattr(block.mesh, ids_attr)]


@pytest.fixture
def strip_mesh():
    """Factory for a row of cells with optional bed and layer fractions."""
    return make_strip_mesh


@pytest.fixture
def two_block_domain():
    """Factory splitting a strip mesh into two blocks with halos."""
    return make_two_block_domain


@pytest.fixture
def scatter_field():
    """Copy a global field into the blocks of a domain."""
    return scatter

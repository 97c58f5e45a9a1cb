from dataclasses import dataclass, field

import numpy as np
import xarray as xr

__all__ = ['Mesh', 'interface_sigma_from_fractions']


@dataclass
class Mesh:
    """
    The geometry and connectivity of one mesh block, including its halo.

    Elements with indices below ``n_cells_solve`` (and likewise for edges
    and vertices) are owned by the block; the remaining elements are halo
    copies of elements owned by neighbouring blocks.

    Adjacency arrays are 0-based; ``-1`` marks a missing neighbour (e.g. on
    the boundary of a planar mesh).

    Attributes
    ----------
    cells_on_edge : numpy.ndarray
        The two cells sharing each edge, shape (nEdges, 2).  Positive normal
        velocity points from the first to the second cell.

    cells_on_vertex : numpy.ndarray
        The cells incident on each vertex, shape (nVertices, vertexDegree).

    kite_areas_on_vertex : numpy.ndarray
        The area each incident cell contributes to each vertex, shape
        (nVertices, vertexDegree).

    bed_topography : numpy.ndarray
        Bed elevation (m) at cell centres, shape (nCells,).

    layer_thickness_fractions : numpy.ndarray
        The fraction of the column thickness in each layer, top to bottom,
        shape (nVertLevels,).  Sums to 1.

    layer_interface_sigma : numpy.ndarray
        Sigma of each layer interface, 0 at the top and 1 at the bed, shape
        (nVertLevels + 1,).  Derived from ``layer_thickness_fractions``.

    coeffs_reconstruct : numpy.ndarray or None
        Coefficients for reconstructing cell-centred velocity from normal
        velocity on the edges of each cell, shape (nCells, maxEdges, 3).
    """

    cells_on_edge: np.ndarray
    cells_on_vertex: np.ndarray
    kite_areas_on_vertex: np.ndarray
    bed_topography: np.ndarray
    layer_thickness_fractions: np.ndarray
    cells_on_cell: np.ndarray | None = None
    edges_on_cell: np.ndarray | None = None
    n_edges_on_cell: np.ndarray | None = None
    coeffs_reconstruct: np.ndarray | None = None
    lat_cell: np.ndarray | None = None
    lon_cell: np.ndarray | None = None
    on_a_sphere: bool = False
    n_cells_solve: int | None = None
    n_edges_solve: int | None = None
    n_vertices_solve: int | None = None
    index_to_cell_id: np.ndarray | None = None
    index_to_edge_id: np.ndarray | None = None
    index_to_vertex_id: np.ndarray | None = None
    layer_interface_sigma: np.ndarray = field(init=False)

    def __post_init__(self):
        self.cells_on_edge = np.asarray(self.cells_on_edge, dtype=np.int64)
        self.cells_on_vertex = np.asarray(
            self.cells_on_vertex, dtype=np.int64
        )
        self.kite_areas_on_vertex = np.asarray(
            self.kite_areas_on_vertex, dtype=float
        )
        self.bed_topography = np.asarray(self.bed_topography, dtype=float)
        self.layer_thickness_fractions = np.asarray(
            self.layer_thickness_fractions, dtype=float
        )

        if self.cells_on_edge.ndim != 2 or self.cells_on_edge.shape[1] != 2:
            raise ValueError(
                'cells_on_edge must have shape (nEdges, 2), got '
                f'{self.cells_on_edge.shape}'
            )
        if self.cells_on_vertex.shape != self.kite_areas_on_vertex.shape:
            raise ValueError(
                'cells_on_vertex and kite_areas_on_vertex must have the same '
                f'shape, got {self.cells_on_vertex.shape} and '
                f'{self.kite_areas_on_vertex.shape}'
            )
        if not np.isclose(self.layer_thickness_fractions.sum(), 1.0):
            raise ValueError(
                'layer_thickness_fractions must sum to 1, got '
                f'{self.layer_thickness_fractions.sum()}'
            )

        if self.n_cells_solve is None:
            self.n_cells_solve = self.n_cells
        if self.n_edges_solve is None:
            self.n_edges_solve = self.n_edges
        if self.n_vertices_solve is None:
            self.n_vertices_solve = self.n_vertices
        if self.index_to_cell_id is None:
            self.index_to_cell_id = np.arange(self.n_cells)
        if self.index_to_edge_id is None:
            self.index_to_edge_id = np.arange(self.n_edges)
        if self.index_to_vertex_id is None:
            self.index_to_vertex_id = np.arange(self.n_vertices)

        self.layer_interface_sigma = interface_sigma_from_fractions(
            self.layer_thickness_fractions
        )

    @property
    def n_cells(self) -> int:
        return self.bed_topography.shape[0]

    @property
    def n_edges(self) -> int:
        return self.cells_on_edge.shape[0]

    @property
    def n_vertices(self) -> int:
        return self.cells_on_vertex.shape[0]

    @property
    def vertex_degree(self) -> int:
        return self.cells_on_vertex.shape[1]

    @property
    def n_vert_levels(self) -> int:
        return self.layer_thickness_fractions.shape[0]

    @property
    def max_edges(self) -> int | None:
        if self.edges_on_cell is None:
            return None
        return self.edges_on_cell.shape[1]

    @classmethod
    def from_dataset(cls, ds: xr.Dataset) -> 'Mesh':
        """
        Create a mesh from an MPAS mesh dataset.

        MPAS connectivity is 1-based with 0 for a missing neighbour; it is
        converted here to 0-based with -1 for a missing neighbour.

        Parameters
        ----------
        ds : xarray.Dataset
            A dataset with at least ``cellsOnEdge``, ``cellsOnVertex``,
            ``kiteAreasOnVertex``, ``bedTopography`` and
            ``layerThicknessFractions``.

        Returns
        -------
        mesh : lidiag.mesh.Mesh
            The mesh.
        """
        required = [
            'cellsOnEdge',
            'cellsOnVertex',
            'kiteAreasOnVertex',
            'bedTopography',
            'layerThicknessFractions',
        ]
        missing = [name for name in required if name not in ds]
        if missing:
            raise KeyError(f'Mesh dataset is missing variables: {missing}')

        bed = ds.bedTopography
        if 'Time' in bed.dims:
            bed = bed.isel(Time=0)

        kwargs = dict(
            cells_on_edge=_to_zero_based(ds.cellsOnEdge),
            cells_on_vertex=_to_zero_based(ds.cellsOnVertex),
            kite_areas_on_vertex=ds.kiteAreasOnVertex.values,
            bed_topography=bed.values,
            layer_thickness_fractions=ds.layerThicknessFractions.values,
        )
        for var, arg in [
            ('cellsOnCell', 'cells_on_cell'),
            ('edgesOnCell', 'edges_on_cell'),
        ]:
            if var in ds:
                kwargs[arg] = _to_zero_based(ds[var])
        if 'nEdgesOnCell' in ds:
            kwargs['n_edges_on_cell'] = ds.nEdgesOnCell.values
        if 'coeffs_reconstruct' in ds:
            kwargs['coeffs_reconstruct'] = ds.coeffs_reconstruct.values
        if 'latCell' in ds and 'lonCell' in ds:
            kwargs['lat_cell'] = ds.latCell.values
            kwargs['lon_cell'] = ds.lonCell.values
        on_a_sphere = ds.attrs.get('on_a_sphere', 'NO')
        kwargs['on_a_sphere'] = str(on_a_sphere).strip().upper() == 'YES'
        for var, arg in [
            ('indexToCellID', 'index_to_cell_id'),
            ('indexToEdgeID', 'index_to_edge_id'),
            ('indexToVertexID', 'index_to_vertex_id'),
        ]:
            if var in ds:
                kwargs[arg] = ds[var].values
        return cls(**kwargs)

    def to_dataset(self) -> xr.Dataset:
        """
        Convert the mesh to an MPAS mesh dataset (1-based connectivity).
        """
        ds = xr.Dataset()
        ds['cellsOnEdge'] = (('nEdges', 'TWO'), self.cells_on_edge + 1)
        ds['cellsOnVertex'] = (
            ('nVertices', 'vertexDegree'),
            self.cells_on_vertex + 1,
        )
        ds['kiteAreasOnVertex'] = (
            ('nVertices', 'vertexDegree'),
            self.kite_areas_on_vertex,
        )
        ds['bedTopography'] = (('nCells',), self.bed_topography)
        ds['layerThicknessFractions'] = (
            ('nVertLevels',),
            self.layer_thickness_fractions,
        )
        ds['layerInterfaceSigma'] = (
            ('nVertInterfaces',),
            self.layer_interface_sigma,
        )
        if self.cells_on_cell is not None:
            ds['cellsOnCell'] = (
                ('nCells', 'maxEdges'),
                self.cells_on_cell + 1,
            )
        if self.edges_on_cell is not None:
            ds['edgesOnCell'] = (
                ('nCells', 'maxEdges'),
                self.edges_on_cell + 1,
            )
        if self.n_edges_on_cell is not None:
            ds['nEdgesOnCell'] = (('nCells',), self.n_edges_on_cell)
        if self.coeffs_reconstruct is not None:
            ds['coeffs_reconstruct'] = (
                ('nCells', 'maxEdges', 'R3'),
                self.coeffs_reconstruct,
            )
        if self.lat_cell is not None and self.lon_cell is not None:
            ds['latCell'] = (('nCells',), self.lat_cell)
            ds['lonCell'] = (('nCells',), self.lon_cell)
        ds['indexToCellID'] = (('nCells',), self.index_to_cell_id)
        ds['indexToEdgeID'] = (('nEdges',), self.index_to_edge_id)
        ds['indexToVertexID'] = (('nVertices',), self.index_to_vertex_id)
        ds.attrs['on_a_sphere'] = 'YES' if self.on_a_sphere else 'NO'
        return ds


def interface_sigma_from_fractions(fractions):
    """
    Compute sigma at layer interfaces from layer thickness fractions.

    Parameters
    ----------
    fractions : numpy.ndarray
        Layer thickness fractions, top to bottom, shape (nVertLevels,).

    Returns
    -------
    sigma : numpy.ndarray
        Sigma at interfaces, shape (nVertLevels + 1,), with exactly 0 at the
        top and 1 at the bed.
    """
    fractions = np.asarray(fractions, dtype=float)
    sigma = np.zeros(fractions.shape[0] + 1)
    sigma[1:] = np.cumsum(fractions)
    sigma[-1] = 1.0
    return sigma


def _to_zero_based(da):
    # MPAS uses 0 for a missing neighbour
    return da.values.astype(np.int64) - 1

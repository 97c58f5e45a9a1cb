from dataclasses import dataclass, fields

import numpy as np
import xarray as xr

__all__ = ['StateSnapshot', 'FIELD_LOCATIONS', 'FIELD_DIMS']

# the mesh element each state field lives on, used by halo exchanges
FIELD_LOCATIONS = {
    'thickness': 'cell',
    'layer_thickness': 'cell',
    'tracers': 'cell',
    'cell_mask': 'cell',
    'lower_surface': 'cell',
    'upper_surface': 'cell',
    'u_reconstruct_x': 'cell',
    'u_reconstruct_y': 'cell',
    'u_reconstruct_z': 'cell',
    'u_reconstruct_zonal': 'cell',
    'u_reconstruct_meridional': 'cell',
    'edge_mask': 'edge',
    'normal_velocity': 'edge',
    'layer_thickness_edge': 'edge',
    'vertex_mask': 'vertex',
    'upper_surface_vertex': 'vertex',
}

# MPAS variable names and dimensions (without Time) for each field
FIELD_DIMS = {
    'thickness': ('thickness', ('nCells',)),
    'layer_thickness': ('layerThickness', ('nCells', 'nVertLevels')),
    'tracers': ('tracers', ('nCells', 'nVertLevels', 'nTracers')),
    'cell_mask': ('cellMask', ('nCells',)),
    'lower_surface': ('lowerSurface', ('nCells',)),
    'upper_surface': ('upperSurface', ('nCells',)),
    'u_reconstruct_x': ('uReconstructX', ('nCells', 'nVertLevels')),
    'u_reconstruct_y': ('uReconstructY', ('nCells', 'nVertLevels')),
    'u_reconstruct_z': ('uReconstructZ', ('nCells', 'nVertLevels')),
    'u_reconstruct_zonal': (
        'uReconstructZonal',
        ('nCells', 'nVertLevels'),
    ),
    'u_reconstruct_meridional': (
        'uReconstructMeridional',
        ('nCells', 'nVertLevels'),
    ),
    'edge_mask': ('edgeMask', ('nEdges',)),
    'normal_velocity': ('normalVelocity', ('nEdges', 'nVertLevels')),
    'layer_thickness_edge': (
        'layerThicknessEdge',
        ('nEdges', 'nVertLevels'),
    ),
    'vertex_mask': ('vertexMask', ('nVertices',)),
    'upper_surface_vertex': ('upperSurfaceVertex', ('nVertices',)),
}


@dataclass
class StateSnapshot:
    """
    One time level of the evolving fields on a mesh block.

    Arrays are cell- (or edge-, vertex-) first: ``tracers`` has shape
    (nCells, nVertLevels, nTracers).  All arrays are allocated once and
    updated in place by the diagnostic solve.
    """

    thickness: np.ndarray
    layer_thickness: np.ndarray
    tracers: np.ndarray
    cell_mask: np.ndarray
    lower_surface: np.ndarray
    upper_surface: np.ndarray
    u_reconstruct_x: np.ndarray
    u_reconstruct_y: np.ndarray
    u_reconstruct_z: np.ndarray
    u_reconstruct_zonal: np.ndarray
    u_reconstruct_meridional: np.ndarray
    edge_mask: np.ndarray
    normal_velocity: np.ndarray
    layer_thickness_edge: np.ndarray
    vertex_mask: np.ndarray
    upper_surface_vertex: np.ndarray

    @classmethod
    def zeros(cls, mesh, n_tracers: int = 1) -> 'StateSnapshot':
        """
        Allocate a state with every field set to zero.

        Parameters
        ----------
        mesh : lidiag.mesh.Mesh
            The mesh block the state lives on.

        n_tracers : int, optional
            The number of tracers (e.g. temperature).
        """
        sizes = {
            'nCells': mesh.n_cells,
            'nEdges': mesh.n_edges,
            'nVertices': mesh.n_vertices,
            'nVertLevels': mesh.n_vert_levels,
            'nTracers': n_tracers,
        }
        kwargs = {}
        for name, (_, dims) in FIELD_DIMS.items():
            shape = tuple(sizes[dim] for dim in dims)
            dtype = np.int32 if name.endswith('_mask') else float
            kwargs[name] = np.zeros(shape, dtype=dtype)
        return cls(**kwargs)

    @classmethod
    def from_dataset(
        cls, ds: xr.Dataset, mesh, time_index: int = 0
    ) -> 'StateSnapshot':
        """
        Read a state from an MPAS dataset.

        ``thickness`` is required.  ``layerThickness`` defaults to the
        layer thickness fractions times the thickness and other missing
        fields default to zero.

        Parameters
        ----------
        ds : xarray.Dataset
            The dataset, with or without a ``Time`` dimension.

        mesh : lidiag.mesh.Mesh
            The mesh block the state lives on.

        time_index : int, optional
            The index along ``Time`` to read.
        """
        if 'thickness' not in ds:
            raise KeyError('State dataset is missing variable: thickness')
        if 'Time' in ds.dims:
            ds = ds.isel(Time=time_index)
        n_tracers = ds.sizes.get('nTracers', 1)
        state = cls.zeros(mesh, n_tracers=n_tracers)
        for name, (var, dims) in FIELD_DIMS.items():
            if var not in ds:
                continue
            target = getattr(state, name)
            values = ds[var].transpose(*dims).values
            if values.shape != target.shape:
                raise ValueError(
                    f'{var} has shape {values.shape} but the mesh requires '
                    f'{target.shape}'
                )
            target[...] = values
        if 'layerThickness' not in ds:
            state.layer_thickness[...] = (
                state.thickness[:, np.newaxis]
                * mesh.layer_thickness_fractions[np.newaxis, :]
            )
        return state

    def to_dataset(self) -> xr.Dataset:
        """
        Convert the state to an MPAS dataset with a single ``Time`` entry.
        """
        ds = xr.Dataset()
        for name, (var, dims) in FIELD_DIMS.items():
            da = xr.DataArray(getattr(self, name), dims=dims)
            ds[var] = da.expand_dims('Time')
        return ds

    def copy(self) -> 'StateSnapshot':
        """Return a deep copy of the state."""
        return StateSnapshot(
            **{f.name: getattr(self, f.name).copy() for f in fields(self)}
        )

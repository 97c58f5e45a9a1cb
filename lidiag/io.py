from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import netCDF4
import numpy
import xarray as xr

from lidiag.domain import Block, Domain
from lidiag.mesh import Mesh
from lidiag.state import StateSnapshot

__all__ = [
    'read_dataset',
    'write_netcdf',
    'read_domain',
    'write_state',
]


# Default compression options when compression is requested as a boolean.
# These options are supported by the netCDF4/HDF5-based backends
# ('netcdf4' and 'h5netcdf').
DEFAULT_COMPRESSION = {
    'zlib': True,
    'complevel': 4,
    'shuffle': True,
}

NetcdfFormat = Literal[
    'NETCDF4',
    'NETCDF4_CLASSIC',
    'NETCDF3_64BIT',
    'NETCDF3_CLASSIC',
]
NetcdfEngine = Literal['netcdf4', 'scipy', 'h5netcdf']


def read_dataset(path, **kwargs) -> xr.Dataset:
    """Open an MPAS dataset with package defaults.

    MPAS files store times as character arrays rather than CF times, so
    ``decode_times=False`` is used unless explicitly overridden.  Any extra
    keyword arguments are passed through to ``xarray.open_dataset``.
    """
    if 'decode_times' not in kwargs:
        kwargs['decode_times'] = False
    return xr.open_dataset(path, **kwargs)


def write_netcdf(
    ds: xr.Dataset,
    filename: Union[str, Path],
    fillvalues: Optional[Dict[str, Any]] = None,
    format: Optional[NetcdfFormat] = None,
    engine: Optional[NetcdfEngine] = None,
    has_fill_values: Optional[Union[bool, List[str]]] = None,
    compression: Optional[Union[bool, List[str]]] = None,
    compression_opts: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Write an xarray.Dataset to a file with NetCDF4 fill values

    Parameters
    ----------
    ds : xarray.Dataset
        The dataset to save

    filename : str
        The path for the NetCDF file to write

    fillvalues : dict, optional
        A dictionary of fill values for different NetCDF types.  Default is
        ``netCDF4.default_fillvals``

    format : {'NETCDF4', 'NETCDF4_CLASSIC', 'NETCDF3_64BIT', 'NETCDF3_CLASSIC'}, optional
        The NetCDF file format to use, the default is 'NETCDF4'

    engine : {'netcdf4', 'scipy', 'h5netcdf'}, optional
        The library to use for NetCDF output, the default is 'netcdf4'.

    has_fill_values : bool | list, optional
        Controls whether to apply ``_FillValue`` per variable:

          - bool: apply to all variables (True adds, False omits)

          - list: the list of variable names to which to apply fill values.

        If omitted (None), fill values are added only to variables that
        contain NaNs.

    compression : bool | list, optional
        Controls variable compression, with the same forms as
        ``has_fill_values``.  If omitted (None), no compression is used.
        The ``scipy`` engine does not support compression.

    compression_opts : dict, optional
        Compression options to apply when compression is requested.
        Default is ``DEFAULT_COMPRESSION``.
    """  # noqa: E501
    if fillvalues is None:
        fillvalues = netCDF4.default_fillvals

    numpy_fillvals = {}
    for filltype, fillvalue in fillvalues.items():
        # drop string fill values
        if not filltype.startswith('S'):
            numpy_fillvals[numpy.dtype(filltype)] = fillvalue

    if engine == 'scipy':
        compression = None

    encoding_dict = {}
    var_names = list(ds.data_vars.keys()) + list(ds.coords.keys())
    for var_name in var_names:
        encoding = _var_encoding(
            var_name,
            ds[var_name],
            numpy_fillvals,
            has_fill_values,
            compression,
            compression_opts,
        )
        if encoding:
            encoding_dict[var_name] = encoding

    if 'Time' in ds.dims:
        # make sure the Time dimension is unlimited
        ds.encoding['unlimited_dims'] = {'Time'}
    else:
        # make sure there are no unlimited dimensions
        ds.encoding['unlimited_dims'] = set()

    ds.to_netcdf(
        filename,
        encoding=encoding_dict,
        format=format,
        engine=engine,
    )


def read_domain(
    mesh_filename, state_filename=None, n_time_levels=2, time_index=0
):
    """
    Read a single-block domain from MPAS mesh and state files.

    Every time level is initialized from the state read from the file.

    Parameters
    ----------
    mesh_filename : str
        The MPAS mesh file (with ``bedTopography`` and
        ``layerThicknessFractions``).

    state_filename : str, optional
        A file with the state (at least ``thickness``).  By default, the
        state is read from the mesh file.

    n_time_levels : int, optional
        The number of time levels in the block.

    time_index : int, optional
        The index along ``Time`` of the state to read.

    Returns
    -------
    domain : lidiag.domain.Domain
        A domain with a single block.
    """
    with read_dataset(mesh_filename) as ds_mesh:
        mesh = Mesh.from_dataset(ds_mesh)
        if state_filename is None:
            state = StateSnapshot.from_dataset(ds_mesh, mesh, time_index)
    if state_filename is not None:
        with read_dataset(state_filename) as ds_state:
            state = StateSnapshot.from_dataset(ds_state, mesh, time_index)

    time_levels = [state] + [
        state.copy() for _ in range(n_time_levels - 1)
    ]
    return Domain(blocks=[Block(mesh=mesh, time_levels=time_levels)])


def write_state(state, filename, mesh=None, **kwargs):
    """
    Write a state (and optionally its mesh) to an MPAS NetCDF file.

    Parameters
    ----------
    state : lidiag.state.StateSnapshot
        The state to write.

    filename : str
        The output file.

    mesh : lidiag.mesh.Mesh, optional
        A mesh whose variables are written along with the state.

    **kwargs
        Passed on to :func:`write_netcdf`.
    """
    ds = state.to_dataset()
    if mesh is not None:
        ds = xr.merge([mesh.to_dataset(), ds], combine_attrs='override')
    write_netcdf(ds, filename, **kwargs)


def _decide_fill_value(
    var_name: str,
    var: xr.DataArray,
    numpy_fillvals: Dict[Any, Any],
    has_fill_values: Optional[Union[bool, List[str]]],
) -> Tuple[bool, Optional[Any]]:
    dtype = getattr(var, 'dtype', None)
    candidate = numpy_fillvals.get(dtype)

    # 1. Global modes: has_fill_values is bool
    if isinstance(has_fill_values, bool):
        if has_fill_values:
            return True, candidate
        # global disable: suppress for all
        return True, None

    # 2. List mode: per-variable control
    if isinstance(has_fill_values, list):
        if var_name in has_fill_values:
            if candidate is None:
                raise TypeError(
                    f"Variable '{var_name}' (dtype={dtype}) is listed in "
                    'has_fill_values but has no corresponding numpy_fillval.'
                )
            return True, candidate
        # Not listed: always suppress backend default
        return True, None

    # 3. Auto mode (has_fill_values is None)
    if candidate is None:
        return False, None

    has_nan = bool(var.isnull().any())
    if has_nan:
        return True, candidate

    return True, None


def _var_encoding(
    var_name: str,
    var: xr.DataArray,
    numpy_fillvals: Dict[Any, Any],
    has_fill_values: Optional[Union[bool, List[str]]],
    compression: Optional[Union[bool, List[str]]],
    compression_opts: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Compute per-variable encoding for _FillValue and compression.
    """
    encoding = {}

    set_fill, fill_val = _decide_fill_value(
        var_name, var, numpy_fillvals, has_fill_values
    )
    if set_fill:
        # remove any existing _FillValue to avoid bypassing our logic
        var.encoding.pop('_FillValue', None)
        encoding['_FillValue'] = fill_val

    if compression is not None:
        opts = compression_opts or DEFAULT_COMPRESSION
        if compression is True or (
            isinstance(compression, list) and var_name in compression
        ):
            encoding.update(opts)

    return encoding

import numpy as np

from lidiag.mask import is_ice
from lidiag.mesh import interface_sigma_from_fractions

__all__ = [
    'THICKNESS_EPS',
    'compute_interface_sigma',
    'remap_column',
    'vertical_remap',
]

# added to the thickness so interface sigma is defined in ice-free columns
THICKNESS_EPS = 1.0e-30

# number of columns remapped together, bounding the (cells, layers, layers)
# scratch arrays
DEFAULT_CHUNK_SIZE = 4096


def compute_interface_sigma(layer_thickness, thickness, eps=THICKNESS_EPS):
    """
    Compute sigma at the layer interfaces of the current (source) layers.

    Parameters
    ----------
    layer_thickness : numpy.ndarray
        Layer thickness, top to bottom, shape (..., nVertLevels).

    thickness : numpy.ndarray
        Column thickness, shape (...).

    eps : float, optional
        Regularization added to the thickness so zero-thickness columns have
        well-defined interfaces.

    Returns
    -------
    sigma : numpy.ndarray
        Interface sigma, shape (..., nVertLevels + 1), exactly 0 at the top
        and 1 at the bed.
    """
    layer_thickness = np.asarray(layer_thickness, dtype=float)
    thickness = np.asarray(thickness, dtype=float)
    n_levels = layer_thickness.shape[-1]
    sigma = np.zeros(layer_thickness.shape[:-1] + (n_levels + 1,))
    sigma[..., 1:n_levels] = np.cumsum(
        layer_thickness[..., :-1], axis=-1
    ) / (thickness[..., np.newaxis] + eps)
    sigma[..., n_levels] = 1.0
    return sigma


def remap_column(
    thickness,
    is_ice_column,
    layer_thickness,
    tracers,
    layer_thickness_fractions,
    eps=THICKNESS_EPS,
):
    """
    Conservatively remap one column onto the sigma layers of the mesh.

    Parameters
    ----------
    thickness : float
        The ice thickness of the column.

    is_ice_column : bool
        Whether the column has ice.  Ice-free columns come back as zero.

    layer_thickness : numpy.ndarray
        The current layer thickness, top to bottom, shape (nVertLevels,).

    tracers : numpy.ndarray
        The current tracer values, shape (nVertLevels, nTracers).

    layer_thickness_fractions : numpy.ndarray
        The target fraction of the thickness in each layer, shape
        (nVertLevels,).

    eps : float, optional
        Regularization added to the thickness.

    Returns
    -------
    new_layer_thickness : numpy.ndarray
        Layer thickness on the sigma layers, shape (nVertLevels,).

    new_tracers : numpy.ndarray
        Tracer values on the sigma layers, shape (nVertLevels, nTracers).
    """
    fractions = np.asarray(layer_thickness_fractions, dtype=float)
    target_sigma = interface_sigma_from_fractions(fractions)

    new_layer_thickness, new_tracers = _remap_columns(
        thickness=np.array([thickness], dtype=float),
        ice=np.array([is_ice_column], dtype=bool),
        layer_thickness=np.asarray(layer_thickness, dtype=float)[
            np.newaxis, :
        ],
        tracers=np.asarray(tracers, dtype=float)[np.newaxis, :, :],
        fractions=fractions,
        target_sigma=target_sigma,
        eps=eps,
    )
    return new_layer_thickness[0], new_tracers[0]


def vertical_remap(
    thickness,
    cell_mask,
    mesh,
    layer_thickness,
    tracers,
    chunk_size=DEFAULT_CHUNK_SIZE,
):
    """
    Remap layer thickness and tracers of every column of a block in place
    from their current layers onto the sigma layers of the mesh.

    The remap is first-order accurate and conserves, per column, the total
    thickness and the thickness-weighted integral of each tracer.  The
    thickness of each new layer is its sigma fraction of the column
    thickness; any round-off residual is put in the top layer, which may
    leave that layer slightly inconsistent with its sigma interval.

    Parameters
    ----------
    thickness : numpy.ndarray
        Ice thickness, shape (nCells,).

    cell_mask : numpy.ndarray
        Cell mask, shape (nCells,), used to zero out ice-free columns.

    mesh : lidiag.mesh.Mesh
        The mesh block, providing the target sigma layers.

    layer_thickness : numpy.ndarray
        Layer thickness, shape (nCells, nVertLevels), updated in place.

    tracers : numpy.ndarray
        Tracers, shape (nCells, nVertLevels, nTracers), updated in place.

    chunk_size : int, optional
        The number of columns remapped together.

    Returns
    -------
    err : int
        Always 0; inputs are checked upstream.
    """
    n_cells = thickness.shape[0]
    ice = is_ice(cell_mask)
    for start in range(0, n_cells, chunk_size):
        cells = slice(start, min(start + chunk_size, n_cells))
        new_layer_thickness, new_tracers = _remap_columns(
            thickness=thickness[cells],
            ice=ice[cells],
            layer_thickness=layer_thickness[cells, :],
            tracers=tracers[cells, :, :],
            fractions=mesh.layer_thickness_fractions,
            target_sigma=mesh.layer_interface_sigma,
        )
        layer_thickness[cells, :] = new_layer_thickness
        tracers[cells, :, :] = new_tracers
    return 0


def _remap_columns(
    thickness,
    ice,
    layer_thickness,
    tracers,
    fractions,
    target_sigma,
    eps=THICKNESS_EPS,
):
    """
    Remap a batch of independent columns, returning new arrays.
    """
    thickness = np.asarray(thickness, dtype=float)
    padded_thickness = thickness + eps

    src_sigma = compute_interface_sigma(layer_thickness, thickness, eps)

    new_layer_thickness = (
        fractions[np.newaxis, :] * padded_thickness[:, np.newaxis]
    )
    # put any residual in the top layer so the column thickness is conserved
    new_layer_thickness[:, 0] += thickness - new_layer_thickness.sum(axis=1)

    # thickness of the overlap between each source (k1) and target (k2)
    # layer, shape (nCells, nVertLevels, nVertLevels)
    overlap = (
        _overlap_weights(src_sigma, target_sigma)
        * thickness[:, np.newaxis, np.newaxis]
    )

    # sum of h*T in each target layer over the overlapping source layers
    h_tracer_sum = np.einsum('ckt,ckj->cjt', tracers, overlap)

    nonzero = new_layer_thickness != 0.0
    denom = np.where(nonzero, new_layer_thickness, 1.0)
    new_tracers = np.where(
        nonzero[:, :, np.newaxis],
        h_tracer_sum / denom[:, :, np.newaxis],
        0.0,
    )

    # clear out values left behind by eps where there is no ice, including
    # columns flagged as ice that have no thickness
    indicator = np.logical_and(ice, thickness > 0.0).astype(float)
    new_layer_thickness *= indicator[:, np.newaxis]
    new_tracers *= indicator[:, np.newaxis, np.newaxis]
    return new_layer_thickness, new_tracers


def _overlap_weights(src_sigma, dst_sigma):
    """
    Compute the sigma overlap of each source layer with each destination
    layer.

    Parameters
    ----------
    src_sigma : numpy.ndarray
        Source interface sigma, shape (nCells, nSrc + 1).

    dst_sigma : numpy.ndarray
        Destination interface sigma, shape (nDst + 1,).

    Returns
    -------
    weights : numpy.ndarray
        Overlap in sigma, shape (nCells, nSrc, nDst), zero where layers do
        not overlap.
    """
    src_lower = src_sigma[:, :-1, np.newaxis]
    src_upper = src_sigma[:, 1:, np.newaxis]
    dst_lower = dst_sigma[np.newaxis, np.newaxis, :-1]
    dst_upper = dst_sigma[np.newaxis, np.newaxis, 1:]

    lower_overlap = np.maximum(src_lower, dst_lower)
    upper_overlap = np.minimum(src_upper, dst_upper)
    return np.maximum(upper_overlap - lower_overlap, 0.0)

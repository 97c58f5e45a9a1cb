"""
Bit flags for cell, edge and vertex masks and a mask classifier.

Each mask is a small integer per element with independent bits.  A cell
holds exactly one of:

* no ice (``ICE`` not set),
* grounded ice (``ICE`` set, ``FLOATING`` not set),
* floating ice (``ICE`` and ``FLOATING`` set).
"""

import logging

import numpy as np

__all__ = [
    'ICE',
    'DYNAMIC_ICE',
    'FLOATING',
    'MARGIN',
    'DYNAMIC_MARGIN',
    'is_ice',
    'is_not_ice',
    'is_floating_ice',
    'is_grounded_ice',
    'is_dynamic_ice',
    'is_margin',
    'MaskClassifierBase',
    'FlotationMaskClassifier',
    'get_mask_classifier',
]

ICE = 32
DYNAMIC_ICE = 2
FLOATING = 4
MARGIN = 8
DYNAMIC_MARGIN = 16


def is_ice(mask):
    return np.bitwise_and(mask, ICE) == ICE


def is_not_ice(mask):
    return np.bitwise_and(mask, ICE) == 0


def is_floating_ice(mask):
    return np.logical_and(is_ice(mask), np.bitwise_and(mask, FLOATING) != 0)


def is_grounded_ice(mask):
    return np.logical_and(is_ice(mask), np.bitwise_and(mask, FLOATING) == 0)


def is_dynamic_ice(mask):
    return np.bitwise_and(mask, DYNAMIC_ICE) != 0


def is_margin(mask):
    return np.bitwise_and(mask, MARGIN) != 0


class MaskClassifierBase:
    """
    A base class for classifying cells, edges and vertices as ice or no ice.

    Attributes
    ----------
    config : lidiag.config.DiagnosticConfig
        Options for the diagnostic solve.

    logger : logging.Logger
        Logger for the class.
    """

    def __init__(self, config, logger=None):
        """
        Create a mask classifier.

        Parameters
        ----------
        config : lidiag.config.DiagnosticConfig
            Options for the diagnostic solve.
        logger : logging.Logger, optional
            Logger for the class.
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def calculate_mask(self, mesh, state):
        """
        Compute ``cell_mask``, ``edge_mask`` and ``vertex_mask`` in ``state``.

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
        raise NotImplementedError(
            'calculate_mask must be implemented in a subclass'
        )


class FlotationMaskClassifier(MaskClassifierBase):
    """
    Classify cells with ice where the thickness is positive and as floating
    where the ice would float in the ocean at the configured sea level.
    """

    def calculate_mask(self, mesh, state):
        thickness = state.thickness
        cell_mask = np.zeros(mesh.n_cells, dtype=state.cell_mask.dtype)

        ice = thickness > 0.0
        cell_mask[ice] |= ICE
        cell_mask[thickness > self.config.dynamic_thickness] |= DYNAMIC_ICE

        floating = np.logical_and(
            ice,
            self.config.density_ratio * thickness
            < self.config.sea_level - mesh.bed_topography,
        )
        cell_mask[floating] |= FLOATING

        if mesh.cells_on_cell is not None:
            dynamic = is_dynamic_ice(cell_mask)
            cell_mask[_has_neighbor(mesh, ice, ~ice)] |= MARGIN
            cell_mask[_has_neighbor(mesh, dynamic, ~dynamic)] |= (
                DYNAMIC_MARGIN
            )

        state.cell_mask[...] = cell_mask

        # an edge or vertex has (dynamic) ice if any adjacent cell does
        state.edge_mask[...] = _gather_any(
            mesh.cells_on_edge, cell_mask, state.edge_mask.dtype
        )
        state.vertex_mask[...] = _gather_any(
            mesh.cells_on_vertex, cell_mask, state.vertex_mask.dtype
        )

        # edges between ice and no ice are on the margin
        cell1 = mesh.cells_on_edge[:, 0]
        cell2 = mesh.cells_on_edge[:, 1]
        valid = np.logical_and(cell1 >= 0, cell2 >= 0)
        margin_edge = np.zeros(mesh.n_edges, dtype=bool)
        margin_edge[valid] = ice[cell1[valid]] != ice[cell2[valid]]
        state.edge_mask[margin_edge] |= MARGIN

        self.logger.debug(
            f'Mask: {np.count_nonzero(ice)} ice cells, '
            f'{np.count_nonzero(floating)} floating'
        )
        return 0


def get_mask_classifier(config, logger=None):
    """
    Get the mask classifier for the diagnostic solve.

    Parameters
    ----------
    config : lidiag.config.DiagnosticConfig
        Options for the diagnostic solve.
    logger : logging.Logger, optional
        Logger for the classifier.

    Returns
    -------
    classifier : lidiag.mask.MaskClassifierBase
        The mask classifier.
    """
    return FlotationMaskClassifier(config, logger)


def _has_neighbor(mesh, selected, neighbor_selected):
    """Cells in ``selected`` with any neighbour in ``neighbor_selected``."""
    neighbors = mesh.cells_on_cell
    valid = neighbors >= 0
    if mesh.n_edges_on_cell is not None:
        slots = np.arange(neighbors.shape[1])[np.newaxis, :]
        valid = np.logical_and(
            valid, slots < mesh.n_edges_on_cell[:, np.newaxis]
        )
    lookup = np.where(valid, neighbors, 0)
    found = np.logical_and(valid, neighbor_selected[lookup])
    return np.logical_and(selected, found.any(axis=1))


def _gather_any(cells_on_element, cell_mask, dtype):
    """OR the ICE and DYNAMIC_ICE bits of cells adjacent to each element."""
    valid = cells_on_element >= 0
    lookup = np.where(valid, cells_on_element, 0)
    bits = np.where(valid, cell_mask[lookup] & (ICE | DYNAMIC_ICE), 0)
    return np.bitwise_or.reduce(bits, axis=1).astype(dtype)

"""
Halo (ghost-element) exchange between mesh blocks.

Each block owns the first ``n_cells_solve`` cells (and likewise edges and
vertices) in its arrays; the remaining elements are halo copies whose
values belong to another block.  An exchange copies the owner's values of
one state field into every halo copy, matching elements by global ID.
"""

import logging

import numpy as np

from lidiag.state import FIELD_LOCATIONS

__all__ = ['HaloExchangeBase', 'BlockHaloExchange', 'NoHaloExchange']

_LOCATION_ATTRS = {
    'cell': ('index_to_cell_id', 'n_cells_solve'),
    'edge': ('index_to_edge_id', 'n_edges_solve'),
    'vertex': ('index_to_vertex_id', 'n_vertices_solve'),
}


class HaloExchangeBase:
    """
    A base class for halo exchanges.

    An exchange is blocking: when :meth:`exchange` returns, every block has
    up-to-date halo values of the field.
    """

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger(__name__)

    def exchange(self, domain, field_name, time_level=0):
        """
        Update the halo of a state field on all blocks of a domain.

        Parameters
        ----------
        domain : lidiag.domain.Domain
            The domain whose blocks are updated.
        field_name : str
            The name of the state field (e.g. ``'cell_mask'``).
        time_level : int, optional
            The time level of the state to update.
        """
        raise NotImplementedError(
            'exchange must be implemented in a subclass'
        )

    @staticmethod
    def field_location(field_name):
        """The mesh element ('cell', 'edge' or 'vertex') of a field."""
        if field_name not in FIELD_LOCATIONS:
            raise KeyError(f'Unknown field for halo exchange: {field_name}')
        return FIELD_LOCATIONS[field_name]


class NoHaloExchange(HaloExchangeBase):
    """An exchange for a domain with a single block and no halo."""

    def exchange(self, domain, field_name, time_level=0):
        self.field_location(field_name)
        if len(domain) > 1:
            raise ValueError(
                'NoHaloExchange can only be used with a single block, got '
                f'{len(domain)}'
            )


class BlockHaloExchange(HaloExchangeBase):
    """
    Exchange halos between blocks held in the same process.

    The communication schedule (which halo element is copied from which
    element of which block) is computed once from the blocks' global IDs.
    Halo elements that no block owns are left unchanged.
    """

    def __init__(self, domain, logger=None):
        super().__init__(logger=logger)
        self.schedule = {
            location: _build_schedule(domain, *attrs)
            for location, attrs in _LOCATION_ATTRS.items()
        }
        self.n_blocks = len(domain)

    def exchange(self, domain, field_name, time_level=0):
        location = self.field_location(field_name)
        if len(domain) != self.n_blocks:
            raise ValueError(
                f'Halo schedule was built for {self.n_blocks} blocks but the '
                f'domain has {len(domain)}'
            )
        self.logger.debug(f'Halo exchange of {field_name}')
        for dst_index, copies in enumerate(self.schedule[location]):
            dst = getattr(domain[dst_index].state(time_level), field_name)
            for src_index, dst_local, src_local in copies:
                src = getattr(domain[src_index].state(time_level), field_name)
                dst[dst_local, ...] = src[src_local, ...]


def _build_schedule(domain, ids_attr, n_solve_attr):
    """
    For each block, a list of (owner block, halo indices, owner indices).
    """
    owner_block = {}
    owner_local = {}
    for block in domain:
        ids = getattr(block.mesh, ids_attr)
        n_solve = getattr(block.mesh, n_solve_attr)
        for local, global_id in enumerate(ids[:n_solve]):
            global_id = int(global_id)
            if global_id in owner_block:
                raise ValueError(
                    f'Element {global_id} is owned by blocks '
                    f'{owner_block[global_id]} and {block.block_id}'
                )
            owner_block[global_id] = block.block_id
            owner_local[global_id] = local

    schedule = []
    for block in domain:
        ids = getattr(block.mesh, ids_attr)
        n_solve = getattr(block.mesh, n_solve_attr)
        by_owner = {}
        for local in range(n_solve, len(ids)):
            global_id = int(ids[local])
            if global_id not in owner_block:
                continue
            dst_list, src_list = by_owner.setdefault(
                owner_block[global_id], ([], [])
            )
            dst_list.append(local)
            src_list.append(owner_local[global_id])
        schedule.append(
            [
                (owner, np.array(dst_list), np.array(src_list))
                for owner, (dst_list, src_list) in sorted(by_owner.items())
            ]
        )
    return schedule

from dataclasses import dataclass, field

from lidiag.mesh import Mesh
from lidiag.state import StateSnapshot

__all__ = ['Block', 'Domain']


@dataclass
class Block:
    """
    A mesh block and its time levels of state.

    Attributes
    ----------
    mesh : lidiag.mesh.Mesh
        The geometry and connectivity of the block (including its halo).

    time_levels : list of lidiag.state.StateSnapshot
        A fixed-size ring of states.  Index 0 is the current time level and
        index 1 (if present) the new time level being computed.

    block_id : int
        The index of the block in its domain.
    """

    mesh: Mesh
    time_levels: list[StateSnapshot]
    block_id: int = 0

    def __post_init__(self):
        if len(self.time_levels) == 0:
            raise ValueError('A block needs at least one time level')

    @classmethod
    def from_mesh(
        cls,
        mesh: Mesh,
        n_time_levels: int = 2,
        n_tracers: int = 1,
        block_id: int = 0,
    ) -> 'Block':
        """
        Create a block with zero-initialized time levels.
        """
        time_levels = [
            StateSnapshot.zeros(mesh, n_tracers=n_tracers)
            for _ in range(n_time_levels)
        ]
        return cls(mesh=mesh, time_levels=time_levels, block_id=block_id)

    def state(self, time_level: int = 0) -> StateSnapshot:
        """Select the state at a given time level."""
        if not 0 <= time_level < len(self.time_levels):
            raise IndexError(
                f'Time level {time_level} out of range for a block with '
                f'{len(self.time_levels)} time levels'
            )
        return self.time_levels[time_level]

    def shift_time_levels(self) -> None:
        """
        Rotate the ring of time levels so the new time level becomes the
        current one.
        """
        self.time_levels.append(self.time_levels.pop(0))


@dataclass
class Domain:
    """The local mesh blocks of a simulation, in a fixed order."""

    blocks: list[Block] = field(default_factory=list)

    def __post_init__(self):
        for index, block in enumerate(self.blocks):
            block.block_id = index

    def __iter__(self):
        return iter(self.blocks)

    def __len__(self):
        return len(self.blocks)

    def __getitem__(self, index) -> Block:
        return self.blocks[index]

    def add_block(self, block: Block) -> None:
        block.block_id = len(self.blocks)
        self.blocks.append(block)

from .remap import (  # re-export
    THICKNESS_EPS,
    compute_interface_sigma,
    remap_column,
    vertical_remap,
)

__all__ = [
    'THICKNESS_EPS',
    'compute_interface_sigma',
    'remap_column',
    'vertical_remap',
]

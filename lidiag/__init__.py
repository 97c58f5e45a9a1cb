# Re-export the entry points of the diagnostic solve for convenience
from lidiag.config import DiagnosticConfig, load_config  # noqa: F401
from lidiag.diagnostics import (  # noqa: F401
    DiagnosticSolver,
    DiagnosticsFailed,
    run_diagnostics,
)
from lidiag.domain import Block, Domain  # noqa: F401
from lidiag.mesh import Mesh  # noqa: F401
from lidiag.state import StateSnapshot  # noqa: F401
from lidiag.version import __version__  # noqa: F401

__all__ = [
    'Block',
    'DiagnosticConfig',
    'DiagnosticSolver',
    'DiagnosticsFailed',
    'Domain',
    'Mesh',
    'StateSnapshot',
    'load_config',
    'run_diagnostics',
]

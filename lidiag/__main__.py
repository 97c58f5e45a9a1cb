"""
Compute diagnostic variables (surfaces, sigma-layer remapping, reconstructed
velocity and upwind layer thickness on edges) for a land-ice state
"""

import argparse
import logging
import sys

from lidiag.config import DiagnosticConfig, load_config
from lidiag.diagnostics import DiagnosticsFailed, run_diagnostics
from lidiag.halo import NoHaloExchange
from lidiag.io import read_domain, write_state
from lidiag.version import __version__


def main(args=None):
    parser = argparse.ArgumentParser(
        description=__doc__, formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        '-m',
        '--mesh',
        dest='mesh_filename',
        required=True,
        help='MPAS mesh file with bed topography and layer fractions',
    )
    parser.add_argument(
        '-s',
        '--state',
        dest='state_filename',
        help='File with the land-ice state (default: the mesh file)',
    )
    parser.add_argument(
        '-o',
        '--output',
        dest='output_filename',
        required=True,
        help='Output file for the updated state',
    )
    parser.add_argument(
        '-c', '--config', nargs='*', type=str, help='Configuration file(s)'
    )
    parser.add_argument(
        '--solve-velocity',
        dest='solve_velocity',
        action='store_true',
        help='Solve for velocity before the after-velocity diagnostics',
    )
    parser.add_argument(
        '--time-index',
        dest='time_index',
        type=int,
        default=0,
        help='Index along Time of the state to read',
    )
    parser.add_argument(
        '--log',
        dest='log_filename',
        help='Also write log messages to this file',
    )
    parser.add_argument(
        '-v',
        '--version',
        action='version',
        version=f'lidiag {__version__}',
        help='Show version number and exit',
    )
    args = parser.parse_args(args)

    logger, file_handler = _setup_logging(args.log_filename)
    try:
        _run(args, logger)
    finally:
        if file_handler is not None:
            logger.removeHandler(file_handler)
            file_handler.close()


def _run(args, logger):
    config = DiagnosticConfig.from_config(load_config(args.config))
    logger.info(
        f'Reading mesh {args.mesh_filename}'
        + (f' and state {args.state_filename}' if args.state_filename else '')
    )
    domain = read_domain(
        args.mesh_filename,
        state_filename=args.state_filename,
        time_index=args.time_index,
    )

    time_level = 0
    err = run_diagnostics(
        domain,
        time_level,
        args.solve_velocity,
        config,
        NoHaloExchange(logger=logger),
        logger=logger,
    )

    block = domain[0]
    logger.info(f'Writing diagnostic output: {args.output_filename}')
    write_state(block.state(time_level), args.output_filename, mesh=block.mesh)

    if err != 0:
        raise DiagnosticsFailed(err=err, time_level=time_level)


def _setup_logging(log_filename=None):
    logger = logging.getLogger('lidiag')
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter('%(asctime)s %(levelname)s: %(message)s')
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    file_handler = None
    if log_filename is not None:
        file_handler = logging.FileHandler(
            log_filename, mode='a', encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger, file_handler


if __name__ == '__main__':
    main()

import configparser
from dataclasses import dataclass
from importlib import resources

__all__ = ['DiagnosticConfig', 'load_config']

# options that must be present (from defaults or user configs)
_REQUIRED_OPTIONS = {
    'diagnostics': (
        'sea_level',
        'ice_density',
        'ocean_density',
        'thickness_advection',
        'dynamic_thickness',
        'velocity_solver',
    ),
    'parallel': ('num_workers',),
}


def load_config(
    user_config_filenames: str | list[str] | None = None,
    defaults: bool = True,
) -> configparser.ConfigParser:
    """
    Load configuration options for the diagnostic solve.

    Package defaults from ``lidiag/default.cfg`` are read first, then each
    user config in order, so later files override earlier ones.

    Parameters
    ----------
    user_config_filenames : str or list of str, optional
        One or more user config files that override the defaults (sea level,
        densities, advection scheme, number of workers, etc.).

    defaults : bool, optional
        Whether to start from the package defaults.  Without defaults, every
        required option has to be supplied by the user configs.

    Returns
    -------
    config : configparser.ConfigParser
        The combined configuration options.
    """
    config = configparser.ConfigParser()
    if defaults:
        text = resources.files('lidiag').joinpath('default.cfg').read_text()
        config.read_string(text, source='lidiag/default.cfg')

    if user_config_filenames is not None:
        if isinstance(user_config_filenames, str):
            user_config_filenames = [user_config_filenames]
        for filename in user_config_filenames:
            with open(filename) as f:
                config.read_file(f)

    for section, options in _REQUIRED_OPTIONS.items():
        for option in options:
            if not config.has_option(section, option):
                raise ValueError(
                    f'Missing configuration option: [{section}] {option}. '
                    'Please supply a user config file that defines this '
                    'option.'
                )

    return config


@dataclass(frozen=True)
class DiagnosticConfig:
    """
    Read-only options consumed by the diagnostic solve.

    Built once from the config parser at the top of a run and passed by
    reference to every component that needs it.
    """

    sea_level: float = 0.0
    ice_density: float = 910.0
    ocean_density: float = 1028.0
    thickness_advection: str = 'fo'
    dynamic_thickness: float = 100.0
    velocity_solver: str = 'prescribed'
    num_workers: int = 1

    def __post_init__(self):
        if self.ice_density <= 0.0 or self.ocean_density <= 0.0:
            raise ValueError(
                'Ice and ocean densities must be positive, got '
                f'{self.ice_density} and {self.ocean_density}'
            )
        if self.num_workers < 1:
            raise ValueError(
                f'num_workers must be at least 1, got {self.num_workers}'
            )

    @property
    def density_ratio(self) -> float:
        """The ratio of ice to ocean density used for flotation."""
        return self.ice_density / self.ocean_density

    @classmethod
    def from_config(cls, config) -> 'DiagnosticConfig':
        """
        Create the options from a config parser.

        Parameters
        ----------
        config : configparser.ConfigParser
            Configuration options, e.g. from :func:`load_config`.
        """
        section = config['diagnostics']
        return cls(
            sea_level=section.getfloat('sea_level'),
            ice_density=section.getfloat('ice_density'),
            ocean_density=section.getfloat('ocean_density'),
            thickness_advection=section.get('thickness_advection').strip(),
            dynamic_thickness=section.getfloat('dynamic_thickness'),
            velocity_solver=section.get('velocity_solver').strip(),
            num_workers=config.getint('parallel', 'num_workers'),
        )

"""Global options for gpbridge, read from the environment.

Values can be placed in a `.env` file in the working directory;
`load_options` loads it through python-dotenv before reading
`os.environ`.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional
from dotenv import find_dotenv, load_dotenv
from gpbridge.utils.logger import get_logger

logger = get_logger(__name__)

COMMAND_ENVIRONMENT_VARIABLE = "GNUPLOT_COMMAND"
DRY_ENVIRONMENT_VARIABLE = "GPBRIDGE_DRY"
DEFAULT_SESSION_ENVIRONMENT_VARIABLE = "GPBRIDGE_DEFAULT_SESSION"
TERM_ENVIRONMENT_VARIABLE = "GPBRIDGE_TERM"
VERBOSE_ENVIRONMENT_VARIABLE = "GPBRIDGE_VERBOSE"
PREFERRED_FORMAT_ENVIRONMENT_VARIABLE = "GPBRIDGE_PREFERRED_FORMAT"
TIMEOUT_ENVIRONMENT_VARIABLE = "GPBRIDGE_TIMEOUT"

PREFERRED_FORMATS = ("auto", "bin", "text")
TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class Options:
    """
    Package-wide options shared by every session.

    Attributes:
        dry (bool): Use sessions without an underlying gnuplot process.
        cmd (str): Command used to start gnuplot.
        default (str): Name of the default session.
        term (str): Terminal set on every new or reset session.
        init (list[str]): Commands added to a session when it is created or reset.
        verbose (bool): Log every command exchanged with gnuplot.
        preferred_format (str): One of "auto", "bin", "text".
        timeout (float): Seconds to wait for a gnuplot reply.
    """

    dry: bool = False
    cmd: str = "gnuplot"
    default: str = "default"
    term: str = ""
    init: list[str] = field(default_factory=list)
    verbose: bool = False
    preferred_format: str = "auto"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.preferred_format not in PREFERRED_FORMATS:
            raise ValueError(
                f"Unexpected preferred format: {self.preferred_format!r} "
                f"(expected one of {', '.join(PREFERRED_FORMATS)})"
            )


def _parse_flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def _parse_timeout(value: Optional[str], default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", TIMEOUT_ENVIRONMENT_VARIABLE, value, default)
        return default


def options_from_mapping(environment: Mapping[str, str]) -> Options:
    """Build an `Options` instance from environment-like key/value pairs."""
    defaults = Options()
    return Options(
        dry=_parse_flag(environment.get(DRY_ENVIRONMENT_VARIABLE), defaults.dry),
        cmd=environment.get(COMMAND_ENVIRONMENT_VARIABLE) or defaults.cmd,
        default=environment.get(DEFAULT_SESSION_ENVIRONMENT_VARIABLE) or defaults.default,
        term=environment.get(TERM_ENVIRONMENT_VARIABLE, defaults.term),
        verbose=_parse_flag(
            environment.get(VERBOSE_ENVIRONMENT_VARIABLE), defaults.verbose
        ),
        preferred_format=(
            environment.get(PREFERRED_FORMAT_ENVIRONMENT_VARIABLE)
            or defaults.preferred_format
        ).lower(),
        timeout=_parse_timeout(
            environment.get(TIMEOUT_ENVIRONMENT_VARIABLE), defaults.timeout
        ),
    )


def load_options(load_environment: bool = True) -> Options:
    if load_environment:
        load_dotenv(find_dotenv(usecwd=True))
    return options_from_mapping(os.environ)


def apply_options(target: Options, source: Options) -> None:
    """Copy every field of `source` onto `target` in place."""
    for name in Options.__dataclass_fields__:
        setattr(target, name, getattr(source, name))


options = load_options(load_environment=False)

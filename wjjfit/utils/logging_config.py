"""
Logging, warning and progress bar configuration for the fit utilities.

Usage:
    from wjjfit.utils.logging_config import setup_logging, suppress_warnings
    logger = setup_logging(verbose=True)
    suppress_warnings("default")

Two environment variables override what the code asks for:
    ANALYSIS_WARNINGS=on|off|error|default
    ANALYSIS_PROGRESS=on|off
"""

import logging
import os
import warnings
from typing import Literal

import numpy as np

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Environment spellings accepted for ANALYSIS_WARNINGS
_ENV_WARNING_LEVELS = {
    "on": "all",
    "yes": "all",
    "true": "all",
    "1": "all",
    "off": "off",
    "no": "off",
    "false": "off",
    "0": "off",
    "error": "error",
    "default": "default",
}

_TRUTHY = ("on", "yes", "true", "1")


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the root handler and return the "WjjFit" logger."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    return logging.getLogger("WjjFit")


def suppress_warnings(level: Literal["off", "error", "default", "all"] = "off") -> None:
    """
    Set how Python and numpy warnings are reported.

    Empty template bins and zero-weight histograms trigger numpy
    floating-point warnings in the density and pull computations; the
    levels decide whether those are shown.

    Args:
        level: One of
            - 'off': hide warnings and numpy floating-point messages
            - 'error': raise warnings as exceptions (deprecations excepted)
            - 'default': show warnings once, hide uproot/awkward chatter
            - 'all': show everything, numpy included

    ANALYSIS_WARNINGS, when set to a known value, replaces level.
    """
    level = _ENV_WARNING_LEVELS.get(os.environ.get("ANALYSIS_WARNINGS", "").lower(), level)

    if level == "off":
        warnings.filterwarnings("ignore")
        np.seterr(all="ignore")
    elif level == "error":
        warnings.filterwarnings("error")
        for category in (DeprecationWarning, FutureWarning):
            warnings.filterwarnings("ignore", category=category)
    elif level == "default":
        warnings.filterwarnings("default")
        warnings.filterwarnings("ignore", category=DeprecationWarning)
    elif level == "all":
        warnings.filterwarnings("default")
        np.seterr(all="warn")

    if level != "all":
        _quiet_io_libraries()


def _quiet_io_libraries() -> None:
    for module in ("uproot.*", "awkward.*"):
        warnings.filterwarnings("ignore", module=module)


def enable_progress_bars() -> bool:
    """Progress bars are on unless ANALYSIS_PROGRESS says otherwise."""
    return os.environ.get("ANALYSIS_PROGRESS", "on").lower() in _TRUTHY


def get_tqdm_kwargs(desc: str = "", **kwargs) -> dict:
    """
    Keyword arguments for tqdm bars over event loops.

    Args:
        desc: Bar label
        **kwargs: Overrides of the defaults

    Returns:
        Dictionary to unpack into tqdm()
    """
    options = {
        "desc": desc,
        "unit": "evt",
        "ncols": 80,
        "bar_format": "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
        "disable": not enable_progress_bars(),
    }
    options.update(kwargs)
    return options

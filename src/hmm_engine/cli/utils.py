"""
CLI utility functions.

Parsing of command-line observation sequences and model construction from
the configuration.
"""

import re
from typing import List, Optional

from ..config import get_config
from ..hmm import DiscreteHMM
from .errors import InputError, ConfigurationError


def parse_observations(text: Optional[str]) -> List[int]:
    """
    Parse a comma or whitespace separated list of symbols.

    Falls back to ``model.observations`` from the configuration when no text
    is given.
    """
    if text is None:
        configured = get_config('model', 'observations')
        if configured is None:
            raise ConfigurationError(
                "No observations given and none configured",
                suggestions=["Pass --observations 0,0,1,0,1,1"]
            )
        return list(configured)

    tokens = [token for token in re.split(r"[,\s]+", text.strip()) if token]
    try:
        return [int(token) for token in tokens]
    except ValueError:
        raise InputError(
            f"Observations must be integers, got: {text!r}",
            suggestions=["Use a comma separated list: --observations 0,0,1,0,1,1"]
        )


def build_model_from_config() -> DiscreteHMM:
    """Construct the model described by the ``model`` configuration section."""
    section = get_config('model')
    missing = [key for key in ('initial', 'transition', 'emission') if key not in section]
    if missing:
        raise ConfigurationError(
            f"Model configuration is missing: {', '.join(missing)}",
            suggestions=["Add the missing keys under \"model\" in the config file"]
        )

    return DiscreteHMM(section['initial'], section['transition'], section['emission'])

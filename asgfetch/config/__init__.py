import warnings
from pathlib import Path

from . import config

FETCH_DEFAULTS = config.FETCH_DEFAULTS
GENERAL_DEFAULTS = config.GENERAL_DEFAULTS

try:
    from . import user_config
except ImportError:
    user_config = None

for category, name in zip(
    (FETCH_DEFAULTS, GENERAL_DEFAULTS), ("FETCH_DEFAULTS", "GENERAL_DEFAULTS")
):
    try:
        category |= getattr(user_config, name)
    except AttributeError:
        pass

if not Path(GENERAL_DEFAULTS["log_path"]).exists():
    try:
        Path(GENERAL_DEFAULTS["log_path"]).mkdir(exist_ok=True, parents=True)
    except OSError:
        warnings.warn(
            f"{GENERAL_DEFAULTS['log_path']} not accessible, logging to file "
            f"will fail"
        )

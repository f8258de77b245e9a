"""
desired settings should be placed in asgfetch/config/user_config.py.
"""
import os
from pathlib import Path

home = os.path.expanduser("~")

GENERAL_DEFAULTS = {
    "secrets_folders": (
        Path(home, ".asgfetch", "secrets"),
        Path(home, ".ssh"),
        Path(home),
    ),
    "log_path": f"{home}/.asgfetch/logs",
    "uname": "ubuntu",
}
FETCH_DEFAULTS = {
    # seconds to wait for the SSH handshake to complete
    "connect_timeout": 30,
    "local_dir_mode": 0o755,
    "local_destination_dir": "fetched",
}

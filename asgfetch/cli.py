"""command-line interface: fetch the files described in a YAML file."""
from typing import Optional

import fire

from asgfetch.errors import FetchErrorGroup
from asgfetch.fetch import fetch_files_from_asgs, RemoteFileSpecification
from asgfetch.utilities import ASGFETCH_CONSOLE, init_logging


def fetch_from_spec_file(
    spec_file: str,
    region: Optional[str] = None,
    log: bool = False,
    quiet: bool = False,
):
    """
    fetch files from Auto Scaling Group instances as described in a YAML
    file. See RemoteFileSpecification.from_mapping() for the format.

    Args:
        spec_file: path to YAML specification
        region: AWS region of the groups; defaults to the profile's region
        log: also write a log file to the configured log directory
        quiet: don't print progress

    Raises:
        SystemExit: with status 2 if `spec_file` is invalid, or status 1 if
            anything could not be fetched.
    """
    if log is True:
        init_logging()
    try:
        spec = RemoteFileSpecification.from_yaml(spec_file)
    except ValueError as ex:
        ASGFETCH_CONSOLE.print(
            f"invalid specification {spec_file}: {ex}",
            style="red",
            markup=False,
        )
        raise SystemExit(2)
    try:
        fetched = fetch_files_from_asgs(region, spec, verbose=not quiet)
    except FetchErrorGroup as group:
        ASGFETCH_CONSOLE.print(f"{group.message}:", style="red")
        for exception in group.exceptions:
            ASGFETCH_CONSOLE.print(
                f"  {type(exception).__name__}: {exception}",
                style="red",
                markup=False,
            )
        raise SystemExit(1)
    if quiet is False:
        for path in fetched:
            ASGFETCH_CONSOLE.print(str(path))


def main():
    fire.Fire(fetch_from_spec_file)


if __name__ == "__main__":
    main()

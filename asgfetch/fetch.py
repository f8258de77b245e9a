"""
Retrieve files and file contents from EC2 instances, individually or across
every instance in Auto Scaling Groups. Instances are found by ID or ASG
membership, reached at their public IP addresses, and logged into with an
SshAuth.

Functions that operate on a single instance, or that read file contents
from an ASG, raise the first error they encounter. `fetch_files_from_asgs()`
instead keeps going and raises everything that went wrong at the end, as a
FetchErrorGroup.
"""
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Mapping, Optional, Sequence, Union

import boto3
import botocore.client
from dustgoggles.structures import listify
import yaml

from asgfetch.aws.autoscaling import get_instance_ids_for_asg
from asgfetch.aws.ec2 import get_public_ip_of_instance
from asgfetch.aws.utilities import init_client
from asgfetch.config import FETCH_DEFAULTS, GENERAL_DEFAULTS
from asgfetch.errors import FetchErrorGroup, InvalidAuthError
from asgfetch.ssh import (
    fetch_contents_of_file,
    fetch_contents_of_files,
    Host,
    KeyPair,
    scp_dir_from,
    SshAgent,
    SshAuth,
)
from asgfetch.utilities import console_and_log

LOGGER = logging.getLogger(__name__)


def _instance_host(
    region: Optional[str],
    ssh_user: str,
    ssh_auth: SshAuth,
    instance_id: str,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> Host:
    ip = get_public_ip_of_instance(instance_id, region, client, session)
    return Host(hostname=ip, user=ssh_user, auth=ssh_auth)


def fetch_contents_of_file_from_instance(
    region: Optional[str],
    ssh_user: str,
    ssh_auth: SshAuth,
    instance_id: str,
    use_sudo: bool,
    file_path: str,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> str:
    """
    look up the public IP of an EC2 instance, log in to it over SSH, and
    read a file.

    Args:
        region: AWS region of the instance
        ssh_user: user name on the instance
        ssh_auth: how to authenticate
        instance_id: ID of the instance
        use_sudo: read the file with sudo
        file_path: path to file on the instance
        client: optional boto3 ec2 Client object
        session: optional boto3 Session object

    Returns:
        contents of the file.
    """
    host = _instance_host(
        region, ssh_user, ssh_auth, instance_id, client, session
    )
    return fetch_contents_of_file(host, file_path, use_sudo)


def fetch_contents_of_files_from_instance(
    region: Optional[str],
    ssh_user: str,
    ssh_auth: SshAuth,
    instance_id: str,
    use_sudo: bool,
    *file_paths: str,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> dict[str, str]:
    """
    like `fetch_contents_of_file_from_instance()`, but reads several files.

    Returns:
        dict whose keys are file paths and whose values are file contents.
    """
    host = _instance_host(
        region, ssh_user, ssh_auth, instance_id, client, session
    )
    return fetch_contents_of_files(host, file_paths, use_sudo)


def fetch_contents_of_file_from_asg(
    region: Optional[str],
    ssh_user: str,
    ssh_auth: SshAuth,
    asg_name: str,
    use_sudo: bool,
    file_path: str,
    session: Optional[boto3.Session] = None,
) -> dict[str, str]:
    """
    read the same file from every instance in an Auto Scaling Group.

    Returns:
        dict whose keys are instance IDs and whose values are the contents
            of the file on that instance.
    """
    session = session if session is not None else boto3.Session()
    ec2 = init_client("ec2", None, session, region=region)
    return {
        instance_id: fetch_contents_of_file_from_instance(
            region, ssh_user, ssh_auth, instance_id, use_sudo, file_path, ec2
        )
        for instance_id in get_instance_ids_for_asg(
            asg_name, region, session=session
        )
    }


def fetch_contents_of_files_from_asg(
    region: Optional[str],
    ssh_user: str,
    ssh_auth: SshAuth,
    asg_name: str,
    use_sudo: bool,
    *file_paths: str,
    session: Optional[boto3.Session] = None,
) -> dict[str, dict[str, str]]:
    """
    read the same files from every instance in an Auto Scaling Group.

    Returns:
        dict whose keys are instance IDs and whose values are dicts of
            file path: file contents.
    """
    session = session if session is not None else boto3.Session()
    ec2 = init_client("ec2", None, session, region=region)
    return {
        instance_id: fetch_contents_of_files_from_instance(
            region,
            ssh_user,
            ssh_auth,
            instance_id,
            use_sudo,
            *file_paths,
            client=ec2,
        )
        for instance_id in get_instance_ids_for_asg(
            asg_name, region, session=session
        )
    }


def local_destination_dir(
    local_dir: Union[str, Path], public_ip: str, remote_dir: str
) -> Path:
    """
    where files fetched from `remote_dir` on the instance at `public_ip`
    go: local_dir/<public_ip>/<last component of remote_dir>.
    """
    return Path(local_dir, public_ip, PurePosixPath(remote_dir).name)


def fetch_files_from_instance(
    region: Optional[str],
    ssh_user: str,
    ssh_auth: SshAuth,
    instance_id: str,
    use_sudo: bool,
    remote_dir: str,
    local_dir: Union[str, Path],
    filename_filters: Sequence[str] = (),
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> list[Path]:
    """
    look up the public IP of an EC2 instance, log in to it over SSH, and
    download files matching `filename_filters` from `remote_dir` to
    local_dir/<public_ip>/<name of remote_dir>.

    Args:
        region: AWS region of the instance
        ssh_user: user name on the instance
        ssh_auth: how to authenticate
        instance_id: ID of the instance
        use_sudo: list and read files with sudo
        remote_dir: directory on the instance
        local_dir: base local directory for downloaded files
        filename_filters: bash-style wildcard patterns, e.g. "*.log". if
            empty, download all files in `remote_dir`.
        client: optional boto3 ec2 Client object
        session: optional boto3 Session object

    Returns:
        local paths of downloaded files.
    """
    host = _instance_host(
        region, ssh_user, ssh_auth, instance_id, client, session
    )
    destination = local_destination_dir(local_dir, host.hostname, remote_dir)
    destination.mkdir(
        mode=FETCH_DEFAULTS["local_dir_mode"], parents=True, exist_ok=True
    )
    return scp_dir_from(
        host, remote_dir, destination, filename_filters, use_sudo
    )


def _auth_from_mapping(auth: Mapping[str, Any]) -> SshAuth:
    """
    build an SshAuth from configuration data: {"key_file": path},
    {"key_name": name}, {"ssh_agent": true}, or {"agent_socket": path}.
    """
    known = {"key_file", "key_name", "passphrase", "ssh_agent", "agent_socket"}
    if len(unknown := set(auth.keys()) - known) > 0:
        raise InvalidAuthError(f"Unrecognized auth settings: {unknown}")
    key_pair, override = None, None
    if "key_file" in auth.keys():
        key_pair = KeyPair.from_file(
            auth["key_file"], passphrase=auth.get("passphrase")
        )
    elif "key_name" in auth.keys():
        key_pair = KeyPair.find(
            auth["key_name"], passphrase=auth.get("passphrase")
        )
    if "agent_socket" in auth.keys():
        override = SshAgent(socket_path=auth["agent_socket"])
    return SshAuth(key_pair, bool(auth.get("ssh_agent", False)), override)


class RemoteFileSpecification:
    """
    description of files to fetch from instances in Auto Scaling Groups.
    """

    def __init__(
        self,
        asg_names: Sequence[str],
        remote_path_to_file_filter: Mapping[str, Union[str, Sequence[str]]],
        ssh_auth: SshAuth,
        ssh_user: str = GENERAL_DEFAULTS["uname"],
        use_sudo: bool = False,
        local_destination_dir: Union[str, Path] = FETCH_DEFAULTS[
            "local_destination_dir"
        ],
    ):
        """
        Args:
            asg_names: names of groups whose instances hold the files
            remote_path_to_file_filter: keys are directories on the
                instances; values are bash-style wildcard patterns (or a single
                pattern) for files to fetch from those directories
            ssh_auth: how to authenticate
            ssh_user: user name on the instances
            use_sudo: list and read files with sudo
            local_destination_dir: base local directory for downloaded
                files. each file ends up under
                <local_destination_dir>/<instance public ip>/<name of the
                remote directory>.
        """
        self.asg_names = list(listify(asg_names))
        self.remote_path_to_file_filter = {
            str(k): [] if v is None else list(listify(v))
            for k, v in remote_path_to_file_filter.items()
        }
        self.ssh_auth, self.ssh_user = ssh_auth, ssh_user
        self.use_sudo = use_sudo
        self.local_destination_dir = Path(local_destination_dir)

    @classmethod
    def from_mapping(
        cls, spec: Mapping[str, Any]
    ) -> "RemoteFileSpecification":
        """
        build a RemoteFileSpecification from configuration data, e.g.:

        {
            "asg_names": ["web-asg"],
            "remote_path_to_file_filter": {"/var/log": ["*.log"]},
            "ssh_user": "ubuntu",
            "use_sudo": True,
            "auth": {"key_file": "~/.ssh/web.pem"},
            "local_destination_dir": "fetched"
        }
        """
        if not isinstance(spec, Mapping):
            raise ValueError(
                f"specification must be a mapping, not {type(spec).__name__}"
            )
        spec = dict(spec)
        for field in ("asg_names", "remote_path_to_file_filter"):
            if spec.get(field) is None:
                raise ValueError(f"specification has no '{field}'")
        if not isinstance(spec["remote_path_to_file_filter"], Mapping):
            raise ValueError(
                "remote_path_to_file_filter must map remote directories to "
                "filename filters"
            )
        if "auth" not in spec.keys():
            raise InvalidAuthError("specification has no 'auth' section")
        auth = dict(spec.pop("auth"))
        if "key_file" in auth.keys():
            auth["key_file"] = Path(auth["key_file"]).expanduser()
        return cls(
            spec.pop("asg_names"),
            spec.pop("remote_path_to_file_filter"),
            _auth_from_mapping(auth),
            **spec,
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RemoteFileSpecification":
        """read a RemoteFileSpecification from a YAML file."""
        with open(path) as stream:
            return cls.from_mapping(yaml.safe_load(stream))

    def validate(self):
        """
        Raises:
            InvalidAuthError: if ssh_auth does not enable exactly one method.
            ValueError: if there is nothing to fetch or nobody to fetch as.
        """
        self.ssh_auth.validate()
        if len(self.asg_names) == 0:
            raise ValueError("no Auto Scaling Groups specified")
        if len(self.remote_path_to_file_filter) == 0:
            raise ValueError("no remote directories specified")
        if not self.ssh_user:
            raise ValueError("no SSH user specified")

    def __repr__(self):
        return (
            f"RemoteFileSpecification({self.asg_names}, "
            f"{self.remote_path_to_file_filter}, {self.ssh_user}, "
            f"{self.ssh_auth})"
        )


def fetch_files_from_asgs(
    region: Optional[str],
    spec: RemoteFileSpecification,
    session: Optional[boto3.Session] = None,
    verbose: bool = False,
) -> list[Path]:
    """
    for every ASG and every remote directory named in `spec`, download
    matching files from every instance in the group. see
    `fetch_files_from_instance()` for where files go.

    A failure to look up a group or to fetch from an instance does not stop
    the fetch; all failures are raised together once every group has been
    tried.

    Args:
        region: AWS region of the groups
        spec: what to fetch from where
        session: optional boto3 Session object
        verbose: print and log progress

    Returns:
        local paths of all downloaded files.

    Raises:
        InvalidAuthError: if `spec` has invalid auth, before fetching
            anything.
        FetchErrorGroup: if anything went wrong during the fetch.
    """
    spec.validate()
    session = session if session is not None else boto3.Session()
    autoscaling = init_client("autoscaling", None, session, region=region)
    ec2 = init_client("ec2", None, session, region=region)
    fetched, errors = [], []
    for asg_name in spec.asg_names:
        for remote_dir, filters in spec.remote_path_to_file_filter.items():
            try:
                instance_ids = get_instance_ids_for_asg(
                    asg_name, client=autoscaling
                )
            except Exception as ex:
                LOGGER.warning(f"{asg_name}: {type(ex).__name__}: {ex}")
                errors.append(ex)
                continue
            for instance_id in instance_ids:
                if verbose is True:
                    console_and_log(
                        f"fetching {', '.join(filters) or 'all files'} from "
                        f"{remote_dir} on {instance_id} "
                        f"({asg_name})"
                    )
                try:
                    fetched += fetch_files_from_instance(
                        region,
                        spec.ssh_user,
                        spec.ssh_auth,
                        instance_id,
                        spec.use_sudo,
                        remote_dir,
                        spec.local_destination_dir,
                        filters,
                        client=ec2,
                    )
                except Exception as ex:
                    LOGGER.warning(
                        f"{asg_name}/{instance_id}: {type(ex).__name__}: {ex}"
                    )
                    errors.append(ex)
    if verbose is True:
        console_and_log(
            f"fetched {len(fetched)} file(s), {len(errors)} error(s)",
            style="red" if len(errors) > 0 else None,
        )
    if (group := FetchErrorGroup.collect(errors)) is not None:
        raise group
    return fetched

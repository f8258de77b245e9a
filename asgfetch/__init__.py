"""fetch files from EC2 instances and Auto Scaling Groups over SSH."""
from asgfetch.errors import (
    AsgFetchError,
    AsgNotFoundError,
    FetchErrorGroup,
    InvalidAuthError,
    NoPublicIpError,
    RemoteCommandError,
)
from asgfetch.fetch import (
    fetch_contents_of_file_from_asg,
    fetch_contents_of_file_from_instance,
    fetch_contents_of_files_from_asg,
    fetch_contents_of_files_from_instance,
    fetch_files_from_asgs,
    fetch_files_from_instance,
    local_destination_dir,
    RemoteFileSpecification,
)
from asgfetch.ssh import Host, KeyPair, SshAgent, SshAuth

__version__ = "0.3.0"

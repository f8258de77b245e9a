"""
SSH authentication and remote file retrieval. Connections are made with
fabric; authentication is delegated to paramiko, using exactly one of three
methods: an EC2 key pair, the SSH agent advertised by SSH_AUTH_SOCK, or an
alternate ("override") agent.
"""
import io
import logging
import os
from pathlib import Path, PurePosixPath
import shlex
import shutil
import socket
from typing import (
    Any,
    Collection,
    IO,
    Literal,
    NamedTuple,
    Optional,
    Sequence,
    Union,
)

import fabric.transfer
from dustgoggles.structures import listify
from fabric import Connection
import paramiko
from paramiko.agent import AgentSSH
from paramiko.auth_strategy import AuthStrategy, InMemoryPrivateKey
from paramiko.ssh_exception import PasswordRequiredException, SSHException

from asgfetch.config import FETCH_DEFAULTS, GENERAL_DEFAULTS
from asgfetch.errors import (
    FetchErrorGroup,
    InvalidAuthError,
    RemoteCommandError,
)

LOGGER = logging.getLogger(__name__)

AuthMethod = Literal["keypair", "sshagent", "overridesshagent"]
"""names of the authentication methods an SshAuth can enable"""

KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


def load_private_key(
    text: str, passphrase: Optional[str] = None
) -> paramiko.PKey:
    """
    load a private key of any supported type from PEM / OpenSSH text.

    Raises:
        PasswordRequiredException: if the key is encrypted and no
            passphrase was given.
        ValueError: if the text is not a private key paramiko can read.
    """
    for key_class in KEY_CLASSES:
        try:
            return key_class.from_private_key(
                io.StringIO(text), password=passphrase
            )
        except PasswordRequiredException:
            raise
        except (SSHException, ValueError):
            continue
    raise ValueError("Could not read private key (unsupported type?)")


def find_ssh_key(
    keyname: str, paths: Optional[Collection[Union[str, Path]]] = None
) -> Path:
    """
    look for private SSH keyfile.

    Args:
        keyname: full or partial name of keyfile
        paths: paths in which to search for key file. if not specified, look
            in asgfetch.config.GENERAL_DEFAULTS['secrets_folders'] and the
            working directory.

    Returns:
        path to keyfile

    Raises:
        FileNotFoundError: if no key found
    """
    from magic import Magic

    checked = []
    if paths is None:
        paths = list(GENERAL_DEFAULTS["secrets_folders"]) + [os.getcwd()]
    for directory in filter(lambda p: p.exists(), map(Path, listify(paths))):
        try:
            matching_private_keys = filter(
                lambda x: "private key" in Magic().from_file(str(x)),
                filter(
                    lambda x: keyname in x.name and x.is_file(),
                    directory.iterdir(),
                ),
            )
            return next(matching_private_keys)
        except StopIteration:
            checked.append(f"{directory}")
        except PermissionError:
            checked.append(f"(permission denied) {directory}")
    raise FileNotFoundError(f"Looked in: {'; '.join(checked)}")


class KeyPair:
    """
    an EC2 key pair. We only need the private half to authenticate; the
    public half is kept for reference.
    """

    def __init__(
        self,
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
        name: Optional[str] = None,
        key_file: Optional[Union[str, Path]] = None,
        passphrase: Optional[str] = None,
    ):
        """
        Args:
            public_key: public key in OpenSSH authorized_keys format
            private_key: private key as PEM / OpenSSH text
            name: name of the key pair in EC2
            key_file: path to the private key. used only if `private_key`
                is not given.
            passphrase: passphrase for an encrypted private key
        """
        if private_key is None and key_file is None:
            raise InvalidAuthError(
                "A KeyPair needs either private_key or key_file"
            )
        self.public_key, self.private_key = public_key, private_key
        self.name, self.passphrase = name, passphrase
        self.key_file = None if key_file is None else Path(key_file)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        name: Optional[str] = None,
        passphrase: Optional[str] = None,
    ) -> "KeyPair":
        """
        read a private key file, and the matching '.pub' file if there is
        one next to it.
        """
        path = Path(path)
        public = Path(f"{path}.pub")
        return cls(
            public_key=public.read_text() if public.exists() else None,
            private_key=path.read_text(),
            name=path.stem if name is None else name,
            key_file=path,
            passphrase=passphrase,
        )

    @classmethod
    def find(
        cls,
        keyname: str,
        paths: Optional[Collection[Union[str, Path]]] = None,
        passphrase: Optional[str] = None,
    ) -> "KeyPair":
        """
        find the private key for the EC2 key pair named `keyname` in the
        usual places. see `find_ssh_key()`.
        """
        return cls.from_file(find_ssh_key(keyname, paths), keyname, passphrase)

    def pkey(self) -> paramiko.PKey:
        if self.private_key is not None:
            return load_private_key(self.private_key, self.passphrase)
        return load_private_key(self.key_file.read_text(), self.passphrase)

    def __repr__(self):
        source = self.key_file if self.key_file is not None else "in memory"
        return f"KeyPair({self.name}, {source})"


class SocketAgent(AgentSSH):
    """client for an SSH agent listening on an explicitly-specified socket."""

    def __init__(self, socket_path: Union[str, Path]):
        super().__init__()
        conn = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            conn.connect(str(socket_path))
        except OSError:
            conn.close()
            raise
        self._connect(conn)

    def close(self):
        self._close()


class SshAgent:
    """
    an SSH agent to use in place of the one advertised by SSH_AUTH_SOCK:
    an agent started elsewhere and listening on `socket_path`, a collection
    of in-memory keys, or both.
    """

    def __init__(
        self,
        socket_path: Optional[Union[str, Path]] = None,
        keys: Sequence[paramiko.PKey] = (),
    ):
        if socket_path is None and len(keys) == 0:
            raise InvalidAuthError(
                "An SshAgent needs a socket_path, some keys, or both"
            )
        self.socket_path, self.keys = socket_path, tuple(keys)
        self._agents: list[SocketAgent] = []

    def get_keys(self) -> tuple[paramiko.PKey, ...]:
        """
        all keys this agent offers. if this agent has a socket, this opens a
        connection to it that stays open until `close()` is called, because
        the keys it returns need it to sign authentication requests.
        """
        if self.socket_path is None:
            return self.keys
        agent = SocketAgent(self.socket_path)
        self._agents.append(agent)
        return tuple(agent.get_keys()) + self.keys

    def close(self):
        while len(self._agents) > 0:
            self._agents.pop().close()

    def __repr__(self):
        return f"SshAgent({self.socket_path}, {len(self.keys)} in-memory keys)"


class AgentKeysStrategy(AuthStrategy):
    """paramiko auth strategy that offers exactly an SshAgent's keys."""

    def __init__(self, username: str, agent: SshAgent):
        super().__init__(ssh_config=paramiko.SSHConfig())
        self.username, self.agent = username, agent

    def get_sources(self):
        for key in self.agent.get_keys():
            yield InMemoryPrivateKey(self.username, key)


class SshAuth:
    """
    how to authenticate an SSH connection. Exactly one of `key_pair`,
    `ssh_agent`, or `override_ssh_agent` must be set; `validate()` checks
    this and records which one is enabled.
    """

    def __init__(
        self,
        key_pair: Optional[KeyPair] = None,
        ssh_agent: bool = False,
        override_ssh_agent: Optional[SshAgent] = None,
    ):
        """
        Args:
            key_pair: authenticate with this EC2 key pair
            ssh_agent: if True, authenticate with the local SSH agent
                (started externally, available at SSH_AUTH_SOCK)
            override_ssh_agent: authenticate with this agent instead
        """
        self.key_pair = key_pair
        self.ssh_agent = ssh_agent
        self.override_ssh_agent = override_ssh_agent
        self.enabled_method: Optional[AuthMethod] = None

    def validate(self) -> AuthMethod:
        """
        check that exactly one authentication method is set.

        Returns:
            name of the enabled method.

        Raises:
            InvalidAuthError: if none or more than one is set.
        """
        selected = [
            method
            for method, value in (
                ("keypair", self.key_pair is not None),
                ("sshagent", self.ssh_agent is True),
                ("overridesshagent", self.override_ssh_agent is not None),
            )
            if value is True
        ]
        if len(selected) == 0:
            raise InvalidAuthError(
                "One of key_pair, ssh_agent or override_ssh_agent must be set "
                "for SshAuth"
            )
        if len(selected) > 1:
            raise InvalidAuthError(
                "Only one of key_pair, ssh_agent or override_ssh_agent should "
                "be specified in SshAuth"
            )
        self.enabled_method = selected[0]
        return self.enabled_method

    def connect_kwargs(self, user: str) -> dict[str, Any]:
        """
        paramiko `SSHClient.connect()` kwargs that authenticate `user` with
        the enabled method, and with no other.
        """
        method = self.validate()
        if method == "keypair":
            kwargs = {"allow_agent": False, "look_for_keys": False}
            if self.key_pair.private_key is None:
                kwargs["key_filename"] = str(self.key_pair.key_file)
                if self.key_pair.passphrase is not None:
                    kwargs["passphrase"] = self.key_pair.passphrase
            else:
                kwargs["pkey"] = self.key_pair.pkey()
            return kwargs
        if method == "sshagent":
            if os.environ.get("SSH_AUTH_SOCK") is None:
                raise InvalidAuthError(
                    "ssh_agent is set, but SSH_AUTH_SOCK is not. Is an SSH "
                    "agent running?"
                )
            return {"allow_agent": True, "look_for_keys": False}
        return {
            "auth_strategy": AgentKeysStrategy(user, self.override_ssh_agent)
        }

    def close(self):
        """close any agent connections opened for authentication."""
        if self.override_ssh_agent is not None:
            self.override_ssh_agent.close()

    def __repr__(self):
        if self.enabled_method is None:
            return "SshAuth(unvalidated)"
        return f"SshAuth({self.enabled_method})"


class Host(NamedTuple):
    """a remote host, and how to log in to it."""

    hostname: str
    user: str
    auth: SshAuth
    port: int = 22

    def connection(self) -> Connection:
        """create a fabric Connection to this host. does not open it."""
        return Connection(
            host=self.hostname,
            user=self.user,
            port=self.port,
            connect_timeout=FETCH_DEFAULTS["connect_timeout"],
            connect_kwargs=self.auth.connect_kwargs(self.user),
        )


def sudo_prefix(use_sudo: bool) -> str:
    # -n: fail rather than hang if sudo wants a password
    return "sudo -n " if use_sudo is True else ""


def remote_quote(path: str) -> str:
    """
    shell-quote a remote path, leaving a leading ~ unquoted so the remote
    shell expands it to the login user's home directory.
    """
    if path == "~":
        return path
    if path.startswith("~/") and len(path) > 2:
        return f"~/{shlex.quote(path[2:])}"
    if path.startswith("~/"):
        return path
    return shlex.quote(path)


def unpack_transfer_result(result: fabric.transfer.Result) -> dict:
    """
    summarize a fabric transfer Result.

    Args:
        result: Result of a get, put, or similar SSH operation.

    Returns:
        dict giving local and remote transfer targets, hostname, and port.
    """
    return {
        "local": result.local,
        "remote": result.remote,
        "host": result.connection.host,
        "port": result.connection.port,
    }


class SSH:
    """
    wrapper for a fabric Connection to a Host, offering the remote file
    operations asgfetch needs. Can be used as a context manager, which
    closes the connection on exit.
    """

    def __init__(self, conn: Connection, host: Host):
        self.conn, self.host = conn, host

    @classmethod
    def connect(cls, host: Host) -> "SSH":
        """
        create a connection to `host` and use it to instantiate an SSH
        object. The connection is opened lazily on first use.
        """
        return cls(host.connection(), host)

    def run(self, command: str) -> str:
        """
        run a shell command on the remote host.

        Returns:
            the command's stdout.

        Raises:
            RemoteCommandError: if the command exits with nonzero status.
        """
        LOGGER.debug(f"{self.host.hostname}: {command}")
        result = self.conn.run(command, hide=True, warn=True, in_stream=False)
        if result.exited != 0:
            raise RemoteCommandError(
                self.host.hostname, command, result.exited, result.stderr
            )
        return result.stdout

    def read(self, path: str, use_sudo: bool = False) -> str:
        """read the contents of a remote text file."""
        return self.run(f"{sudo_prefix(use_sudo)}cat {remote_quote(path)}")

    def ls(
        self,
        remote_dir: str,
        filename_filters: Sequence[str] = (),
        use_sudo: bool = False,
        max_file_size_mb: Optional[float] = None,
    ) -> list[str]:
        """
        list regular files under `remote_dir`, recursively.

        Args:
            remote_dir: directory on remote host
            filename_filters: bash-style wildcard patterns, e.g. "*.log".
                files matching any of them are listed. if empty, list all
                files.
            use_sudo: run `find` with sudo
            max_file_size_mb: if not None, list only files smaller than this
                many MiB

        Returns:
            full remote paths of matching files.
        """
        command = f"{sudo_prefix(use_sudo)}find {remote_quote(remote_dir)}"
        command += " -type f"
        if max_file_size_mb is not None:
            # find rounds -size up to whole units; bytes do not round
            command += f" -size -{int(max_file_size_mb * 1024 * 1024)}c"
        if len(filename_filters) > 0:
            names = " -o ".join(
                f"-name {shlex.quote(f)}" for f in filename_filters
            )
            command += f" \\( {names} \\)"
        return [line for line in self.run(command).splitlines() if line]

    def expanduser(self, path: str) -> str:
        """
        replace a leading ~ in a remote path with the login user's home
        directory on the remote host.
        """
        if path != "~" and not path.startswith("~/"):
            return path
        return self.run("printf %s ~") + path[1:]

    def get(self, source: str, target: Union[str, Path]) -> dict:
        """
        copy a file from the remote host to local disk with SFTP.

        Returns:
            dict giving transfer metadata: local, remote, host, and port
        """
        return unpack_transfer_result(self.conn.get(source, str(target)))

    def stream(self, source: str, target: IO[bytes], use_sudo: bool = False):
        """
        copy a remote file's bytes into a local binary stream by running
        `cat` on the remote host. works for files the login user cannot read
        if `use_sudo` is True.
        """
        command = f"{sudo_prefix(use_sudo)}cat {remote_quote(source)}"
        LOGGER.debug(f"{self.host.hostname}: {command}")
        self.conn.open()
        _, stdout, stderr = self.conn.client.exec_command(command)
        shutil.copyfileobj(stdout, target)
        if (status := stdout.channel.recv_exit_status()) != 0:
            raise RemoteCommandError(
                self.host.hostname,
                command,
                status,
                stderr.read().decode(errors="replace"),
            )

    def close(self):
        if self.conn is not None:
            self.conn.close()
        self.host.auth.close()

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.close()

    def __str__(self):
        return f"SSH: {self.host.user}@{self.host.hostname}"


def fetch_contents_of_file(
    host: Host, path: str, use_sudo: bool = False
) -> str:
    """
    connect to `host` and return the contents of the file at `path`.

    Raises:
        RemoteCommandError: if the file cannot be read.
    """
    with SSH.connect(host) as ssh:
        return ssh.read(path, use_sudo)


def fetch_contents_of_files(
    host: Host, paths: Sequence[str], use_sudo: bool = False
) -> dict[str, str]:
    """
    connect to `host` and read several files over the same connection.

    Returns:
        dict whose keys are the elements of `paths` and whose values are
            the contents of those files.

    Raises:
        RemoteCommandError: on the first file that cannot be read.
    """
    with SSH.connect(host) as ssh:
        return {path: ssh.read(path, use_sudo) for path in paths}


def scp_dir_from(
    host: Host,
    remote_dir: str,
    local_dir: Union[str, Path],
    filename_filters: Sequence[str] = (),
    use_sudo: bool = False,
    max_file_size_mb: Optional[float] = None,
) -> list[Path]:
    """
    copy files matching `filename_filters` from `remote_dir` on `host` into
    `local_dir`, preserving their paths relative to `remote_dir`. Failing to
    copy one file does not stop the others from being copied, and leaves
    nothing behind in `local_dir`.

    Args:
        host: remote host
        remote_dir: directory on remote host to copy files from
        local_dir: local directory to copy files into. must exist.
        filename_filters: bash-style wildcard patterns. see `SSH.ls()`.
        use_sudo: list and read files with sudo
        max_file_size_mb: if not None, copy only files smaller than this
            many MiB

    Returns:
        local paths of copied files.

    Raises:
        RemoteCommandError: if listing `remote_dir` fails.
        FetchErrorGroup: if any files could not be copied.
    """
    copied, errors = [], []
    with SSH.connect(host) as ssh:
        remote_dir = ssh.expanduser(remote_dir)
        remote_paths = ssh.ls(
            remote_dir, filename_filters, use_sudo, max_file_size_mb
        )
        LOGGER.info(
            f"{host.hostname}: {len(remote_paths)} file(s) to copy from "
            f"{remote_dir}"
        )
        for remote_path in remote_paths:
            relative = PurePosixPath(remote_path).relative_to(
                PurePosixPath(remote_dir)
            )
            local_path = Path(local_dir, *relative.parts)
            try:
                local_path.parent.mkdir(parents=True, exist_ok=True)
                if use_sudo is True:
                    with local_path.open("wb") as stream:
                        ssh.stream(remote_path, stream, use_sudo)
                else:
                    ssh.get(remote_path, local_path)
                copied.append(local_path)
            except (OSError, SSHException, RemoteCommandError) as ex:
                LOGGER.warning(f"{host.hostname}:{remote_path}: {ex}")
                local_path.unlink(missing_ok=True)
                errors.append(ex)
    if (group := FetchErrorGroup.collect(errors, "file copy")) is not None:
        raise group
    return copied

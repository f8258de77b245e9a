"""utility objects for asgfetch unit tests."""
from fnmatch import fnmatch
import io
from pathlib import Path, PurePosixPath
import shlex

from asgfetch.ssh import Host, SSH, SshAuth


class FakeResult:
    """stands in for an invoke Result."""

    def __init__(self, stdout: str = "", stderr: str = "", exited: int = 0):
        self.stdout, self.stderr, self.exited = stdout, stderr, exited


class FakeTransferResult:
    """stands in for a fabric transfer Result."""

    def __init__(self, local, remote, connection):
        self.local, self.remote, self.connection = local, remote, connection


class FakeChannel:
    def __init__(self, status: int):
        self.status = status

    def recv_exit_status(self):
        return self.status


class FakeChannelFile(io.BytesIO):
    """stands in for the stdout / stderr of paramiko exec_command()."""

    def __init__(self, data: bytes, status: int):
        super().__init__(data)
        self.channel = FakeChannel(status)


class FakeClient:
    def __init__(self, conn: "FakeConnection"):
        self.conn = conn

    def exec_command(self, command):
        self.conn.commands.append(command)
        out, err, status = self.conn.execute(command)
        return (
            None,
            FakeChannelFile(out, status),
            FakeChannelFile(err.encode(), status),
        )


class FakeConnection:
    """
    imitates the parts of a fabric Connection asgfetch uses, serving a
    dict of {remote path: bytes}. understands just enough `cat`, `find` and
    `printf` for our purposes, and expands a leading ~ to `home`. paths in
    `sudo_only` can be read only with sudo.
    """

    def __init__(
        self,
        files,
        sudo_only=(),
        host="10.0.0.1",
        port=22,
        home="/home/ubuntu",
    ):
        self.files, self.sudo_only = dict(files), set(sudo_only)
        self.home = home
        self.host, self.port = host, port
        self.commands, self.opened, self.closed = [], False, False
        self.client = FakeClient(self)

    def execute(self, command: str) -> tuple[bytes, str, int]:
        tokens = [
            self.home + t[1:] if t == "~" or t.startswith("~/") else t
            for t in shlex.split(command)
        ]
        sudo = tokens[:2] == ["sudo", "-n"]
        if sudo is True:
            tokens = tokens[2:]
        if tokens[0] == "printf":
            return tokens[2].encode(), "", 0
        if tokens[0] == "cat":
            path = tokens[1]
            if path not in self.files:
                return b"", f"cat: {path}: No such file or directory", 1
            if path in self.sudo_only and sudo is False:
                return b"", f"cat: {path}: Permission denied", 1
            return self.files[path], "", 0
        if tokens[0] == "find":
            root = tokens[1].rstrip("/")
            under = [p for p in self.files if p.startswith(f"{root}/")]
            if len(under) == 0:
                return b"", f"find: '{root}': No such file or directory", 1
            names = [tokens[i + 1] for i, t in enumerate(tokens) if t == "-name"]
            if len(names) > 0:
                under = [
                    p for p in under
                    if any(fnmatch(PurePosixPath(p).name, n) for n in names)
                ]
            return "".join(f"{p}\n" for p in sorted(under)).encode(), "", 0
        raise ValueError(f"FakeConnection doesn't know how to {command}")

    def run(self, command, **_kwargs):
        self.commands.append(command)
        out, err, status = self.execute(command)
        return FakeResult(out.decode(), err, status)

    def get(self, remote, local):
        # like SFTP, open the local file before reading the remote one
        Path(local).touch()
        if remote not in self.files:
            raise FileNotFoundError(remote)
        if remote in self.sudo_only:
            raise PermissionError(remote)
        Path(local).write_bytes(self.files[remote])
        return FakeTransferResult(local, remote, self)

    def open(self):
        self.opened = True

    def close(self):
        self.closed = True


def fake_host(hostname: str = "10.0.0.1") -> Host:
    return Host(hostname=hostname, user="ubuntu", auth=SshAuth(ssh_agent=True))


def patch_ssh_connect(monkeypatch, conn: FakeConnection):
    """make SSH.connect() hand out SSH objects wrapping `conn`."""
    monkeypatch.setattr(
        SSH, "connect", classmethod(lambda cls, host: cls(conn, host))
    )

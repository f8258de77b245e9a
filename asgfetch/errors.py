"""exception types raised by asgfetch."""
from typing import Optional, Sequence


class AsgFetchError(Exception):
    """base class for asgfetch errors."""


class InvalidAuthError(AsgFetchError, ValueError):
    """an SshAuth does not enable exactly one authentication method."""


class AsgNotFoundError(AsgFetchError, LookupError):
    """the EC2 Auto Scaling API does not know about the named group."""


class NoPublicIpError(AsgFetchError, LookupError):
    """we want to SSH to an instance, but it has no public IP address."""


class RemoteCommandError(AsgFetchError):
    """
    a command run on a remote host over SSH exited with a nonzero status.
    """

    def __init__(
        self, host: str, command: str, exit_code: int, stderr: str = ""
    ):
        self.host, self.command = host, command
        self.exit_code, self.stderr = exit_code, stderr
        message = f"'{command}' on {host} exited with status {exit_code}"
        if len(stderr.strip()) > 0:
            message += f": {stderr.strip()}"
        super().__init__(message)


class FetchErrorGroup(ExceptionGroup):
    """
    all the failures from a batch of independent fetch operations, reported
    together once the batch has finished rather than on the first failure.
    Because this is an ExceptionGroup, callers can handle particular kinds of
    failure with `except*`.
    """

    def derive(self, excs):
        return FetchErrorGroup(self.message, excs)

    @classmethod
    def collect(
        cls, errors: Sequence[Exception], operation: str = "fetch"
    ) -> Optional["FetchErrorGroup"]:
        """
        Args:
            errors: exceptions raised by a batch of operations.
            operation: short description of the operations, for the message.

        Returns:
            a FetchErrorGroup holding `errors`, or None if `errors` is empty.
        """
        if len(errors) == 0:
            return None
        noun = "operation" if len(errors) == 1 else "operations"
        return cls(f"{len(errors)} {operation} {noun} failed", list(errors))

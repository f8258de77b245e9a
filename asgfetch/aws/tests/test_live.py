"""
live checks against the AWS API. skipped unless pytest is run with
--run-aws. these need working credentials and a default region, but do not
create any resources.
"""
import boto3
from botocore.exceptions import ClientError, EndpointConnectionError
import paramiko
import pytest

from asgfetch.aws.autoscaling import get_instance_ids_for_asg
from asgfetch.aws.tests.aws_test_utils import randstr
from asgfetch.errors import AsgNotFoundError, FetchErrorGroup
from asgfetch.fetch import fetch_files_from_asgs, RemoteFileSpecification
from asgfetch.ssh import SshAgent, SshAuth

pytestmark = pytest.mark.live_aws


@pytest.fixture(scope="session")
def aws_reachable():
    """
    Check that we can access AWS at all. This calls STS GetCallerIdentity,
    which is always available to every AWS account. If this fails, it
    probably indicates an expired account, missing or mangled local
    config/credential files, or a network issue.
    """
    sts = boto3.Session().client("sts")
    try:
        return sts.get_caller_identity()
    except (ClientError, EndpointConnectionError) as ce:
        raise OSError(
            f"Can't reach AWS. Check network status and local account "
            f"configuration. API returned error: {ce}"
        )


def test_missing_asg(aws_reachable):
    with pytest.raises(AsgNotFoundError):
        get_instance_ids_for_asg(f"asgfetch-test-{randstr(12)}")


def test_fetch_from_missing_asgs(aws_reachable, tmp_path):
    names = [f"asgfetch-test-{randstr(12)}" for _ in range(2)]
    spec = RemoteFileSpecification(
        names,
        {"/var/log": ["*.log"]},
        SshAuth(
            override_ssh_agent=SshAgent(keys=[paramiko.RSAKey.generate(1024)])
        ),
        local_destination_dir=tmp_path,
    )
    with pytest.raises(FetchErrorGroup) as info:
        fetch_files_from_asgs(None, spec)
    assert len(info.value.exceptions) == 2
    assert all(
        isinstance(e, AsgNotFoundError) for e in info.value.exceptions
    )

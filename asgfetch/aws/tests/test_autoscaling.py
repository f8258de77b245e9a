import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from asgfetch.aws.autoscaling import (
    get_instance_ids_for_asg, get_instance_ids_for_asgs
)
from asgfetch.aws.tests.aws_test_utils import (
    asg_record, fake_instance_id, offline_session, randstr
)
from asgfetch.errors import AsgNotFoundError


@pytest.fixture
def autoscaling():
    client = offline_session().client("autoscaling")
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def test_instance_ids_for_asg(autoscaling):
    client, stubber = autoscaling
    name, ids = randstr(10), [fake_instance_id() for _ in range(3)]
    stubber.add_response(
        "describe_auto_scaling_groups",
        {"AutoScalingGroups": [asg_record(name, ids)]},
        {"AutoScalingGroupNames": [name]},
    )
    assert get_instance_ids_for_asg(name, client=client) == ids


def test_empty_asg(autoscaling):
    client, stubber = autoscaling
    name = randstr(10)
    stubber.add_response(
        "describe_auto_scaling_groups",
        {"AutoScalingGroups": [asg_record(name, [])]},
        {"AutoScalingGroupNames": [name]},
    )
    assert get_instance_ids_for_asg(name, client=client) == []


def test_missing_asg(autoscaling):
    client, stubber = autoscaling
    name = randstr(10)
    stubber.add_response(
        "describe_auto_scaling_groups",
        {"AutoScalingGroups": []},
        {"AutoScalingGroupNames": [name]},
    )
    with pytest.raises(AsgNotFoundError, match=name):
        get_instance_ids_for_asg(name, client=client)


def test_api_errors_propagate(autoscaling):
    client, stubber = autoscaling
    stubber.add_client_error(
        "describe_auto_scaling_groups",
        service_error_code="AccessDenied",
        http_status_code=403,
    )
    with pytest.raises(ClientError):
        get_instance_ids_for_asg(randstr(10), client=client)


def test_instance_ids_for_asgs(autoscaling):
    client, stubber = autoscaling
    groups = {randstr(10): [fake_instance_id()] for _ in range(2)}
    for name, ids in groups.items():
        stubber.add_response(
            "describe_auto_scaling_groups",
            {"AutoScalingGroups": [asg_record(name, ids)]},
            {"AutoScalingGroupNames": [name]},
        )
    assert get_instance_ids_for_asgs(list(groups), client=client) == groups

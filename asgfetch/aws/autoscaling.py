"""lookups of EC2 Auto Scaling Group membership."""
import logging
from typing import Collection, Optional

import boto3
import botocore.client
from cytoolz.curried import get

from asgfetch.aws.utilities import autopage, init_client
from asgfetch.errors import AsgNotFoundError

LOGGER = logging.getLogger(__name__)


def describe_asg(
    asg_name: str,
    region: Optional[str] = None,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> dict:
    """
    fetch the API's full description of a single Auto Scaling Group.

    Args:
        asg_name: name of the group
        region: AWS region of the group. uses the session's default region
            if not specified.
        client: optional boto3 autoscaling Client object
        session: optional boto3 Session object

    Returns:
        AutoScalingGroup structure from a DescribeAutoScalingGroups response.

    Raises:
        AsgNotFoundError: if there is no group named `asg_name`.
    """
    client = init_client("autoscaling", client, session, region=region)
    groups = autopage(
        client,
        "describe_auto_scaling_groups",
        "AutoScalingGroups",
        AutoScalingGroupNames=[asg_name],
    )
    if len(groups) == 0:
        raise AsgNotFoundError(f"Could not find an Auto Scaling Group named "
                               f"{asg_name}")
    return groups[0]


def get_instance_ids_for_asg(
    asg_name: str,
    region: Optional[str] = None,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> list[str]:
    """
    get the IDs of the instances currently in an Auto Scaling Group. Group
    membership changes as the group scales, so this makes a fresh API call
    every time.

    Args:
        asg_name: name of the group
        region: AWS region of the group
        client: optional boto3 autoscaling Client object
        session: optional boto3 Session object

    Returns:
        instance IDs, in the order the API reports them.

    Raises:
        AsgNotFoundError: if there is no group named `asg_name`.
    """
    group = describe_asg(asg_name, region, client, session)
    instance_ids = list(map(get("InstanceId"), group.get("Instances", [])))
    LOGGER.debug(f"{asg_name} has {len(instance_ids)} instance(s)")
    return instance_ids


def get_instance_ids_for_asgs(
    asg_names: Collection[str],
    region: Optional[str] = None,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> dict[str, list[str]]:
    """
    `get_instance_ids_for_asg()` for several groups.

    Returns:
        dict whose keys are group names and whose values are lists of
            instance IDs.
    """
    client = init_client("autoscaling", client, session, region=region)
    return {
        name: get_instance_ids_for_asg(name, client=client)
        for name in asg_names
    }

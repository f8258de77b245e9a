"""lookups of EC2 instance addresses."""
from itertools import chain
import logging
from typing import Collection, Mapping, Optional, Union

import boto3
import botocore.client
from cytoolz.curried import get
from dustgoggles.structures import listify

from asgfetch.aws.utilities import autopage, init_client, tag_dict
from asgfetch.errors import NoPublicIpError

LOGGER = logging.getLogger(__name__)

InstanceDescription = dict[str, Optional[str]]
"""
concise version of an EC2 API Instance data structure
(see https://docs.aws.amazon.com/AWSEC2/latest/APIReference/API_Instance.html)
"""


def summarize_instance_description(
    description: Mapping,
) -> InstanceDescription:
    """
    convert a dictionary produced from an EC2 API Instance object to a more
    concise format.
    """
    return {
        "name": tag_dict(description.get("Tags", [])).get("Name"),
        "ip": description.get("PublicIpAddress"),
        "id": description.get("InstanceId"),
        "state": description.get("State", {}).get("Name"),
        "type": description.get("InstanceType"),
        "ip_private": description.get("PrivateIpAddress"),
        "keyname": description.get("KeyName"),
    }


def describe_instances(
    instance_ids: Union[str, Collection[str]],
    region: Optional[str] = None,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> tuple[InstanceDescription, ...]:
    """
    describe specific EC2 instances.

    Args:
        instance_ids: ID or IDs of instances to describe
        region: AWS region of the instances
        client: optional boto3 ec2 Client object
        session: optional boto3 Session object

    Returns:
        tuple of InstanceDescriptions, one per instance found.
    """
    client = init_client("ec2", client, session, region=region)
    reservations = autopage(
        client,
        "describe_instances",
        "Reservations",
        InstanceIds=list(listify(instance_ids)),
    )
    return tuple(
        map(
            summarize_instance_description,
            chain.from_iterable(map(get("Instances"), reservations)),
        )
    )


def get_public_ips_of_instances(
    instance_ids: Collection[str],
    region: Optional[str] = None,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> dict[str, str]:
    """
    look up the public IP addresses of EC2 instances.

    Args:
        instance_ids: IDs of instances
        region: AWS region of the instances
        client: optional boto3 ec2 Client object
        session: optional boto3 Session object

    Returns:
        dict whose keys are instance IDs and whose values are public IPv4
            addresses.

    Raises:
        NoPublicIpError: if any of the instances has no public IP address.
    """
    instance_ids = list(listify(instance_ids))
    if len(instance_ids) == 0:
        return {}
    descriptions = describe_instances(instance_ids, region, client, session)
    ips = {d["id"]: d["ip"] for d in descriptions if d["ip"] is not None}
    if len(missing := [i for i in instance_ids if i not in ips]) > 0:
        raise NoPublicIpError(
            f"Found no public IP for instance(s) {', '.join(missing)}. They "
            f"may not be running, may still be waiting for IP assignment, or "
            f"may be configured to have no public IP."
        )
    return {i: ips[i] for i in instance_ids}


def get_public_ip_of_instance(
    instance_id: str,
    region: Optional[str] = None,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
) -> str:
    """look up the public IP address of a single EC2 instance."""
    ip = get_public_ips_of_instances([instance_id], region, client, session)
    return ip[instance_id]

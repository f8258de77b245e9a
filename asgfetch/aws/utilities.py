from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Union

import boto3
import botocore.client
from cytoolz import first, identity
from cytoolz.curried import get, mapcat

SESSION_CREDENTIAL_KEYS = (
    "aws_access_key_id", "aws_secret_access_key", "aws_session_token"
)


def tag_dict(tag_records, lower=False):
    formatter = str.lower if lower is True else identity
    return {formatter(tag["Key"]): tag["Value"] for tag in tag_records}


def parse_aws_identity_file(
    path: Union[str, Path], profile: Optional[str] = None
) -> dict[str, str]:
    """
    Parse an AWS config, credentials, or downloaded IAM secrets file.

    Args:
        path: path to file
        profile: if specified, look for settings for this profile
            specifically. Otherwise, use the first profile in the file.
            Ignored if file appears to be an IAM secrets file.

    Returns:
        `dict` of parsed key-value pairs from identity file.

    Raises:
        OSError: if `profile` is specified but not in identity file, or if
            identity file is obviously malformatted.
    """
    with open(path) as config_file:
        lines = config_file.readlines()
    if len(lines) == 0:
        raise OSError("Identity file empty or malformatted")
    if "," in lines[0]:
        # downloaded secret key csv
        parsed = next(csv.DictReader(iter(lines)))
        return {"_".join(k.lower().split(" ")): v for k, v in parsed.items()}
    if profile is not None:
        err = f"{profile} not described in identity file"
        headers = (f"[{profile}]", f"[profile {profile}]")
        is_header = lambda l: l.strip() in headers
    else:
        err = "Identity file empty or malformatted"
        is_header = lambda l: l.strip().startswith("[")
    try:
        lineno = first(i for i, l in enumerate(lines) if is_header(l))
    except StopIteration:
        raise OSError(err)
    parsed = {}
    for line in lines[lineno + 1:]:
        if line.strip().startswith("["):
            break
        try:
            parameter, value = map(str.strip, line.split("="))
            parsed[parameter] = value
        except ValueError:
            continue
    return parsed


def make_boto_session(
    profile: Optional[str] = None,
    credential_file: Optional[Union[str, Path]] = None,
    region: Optional[str] = None,
) -> boto3.Session:
    """
    Create a new boto session.

    Args:
        profile: name of AWS profile to use (default profile if not specified)
        credential_file: path to credential file (looks in default credential
            path if not specified)
        region: name of AWS region, e.g. "us-east-1". (uses profile's default
            region if not specified)

    Returns:
        boto session.
    """
    if credential_file is None:
        return boto3.Session(profile_name=profile, region_name=region)
    creds = parse_aws_identity_file(credential_file, profile)
    session_kwargs = {}
    for key in SESSION_CREDENTIAL_KEYS:
        # IAM secrets files omit the "aws_" prefix
        for name in (key, key.removeprefix("aws_")):
            if name in creds.keys():
                session_kwargs[key] = creds[name]
    return boto3.Session(**session_kwargs, region_name=region)


def make_boto_client(
    service: str,
    profile: Optional[str] = None,
    credential_file: Optional[Union[str, Path]] = None,
    region: Optional[str] = None,
    **client_kwargs,
) -> botocore.client.BaseClient:
    """
    Create a new boto client.

    Args:
        service: service to create client for, e.g. "autoscaling"
        profile: optional name of AWS profile to use
        credential_file: optional path to credential file
        region: optional name of AWS region, e.g. "us-east-1"
        client_kwargs: passed directly to botocore client constructor

    Returns:
        boto client for service.
    """
    session = make_boto_session(profile, credential_file, region)
    return session.client(service, **client_kwargs)


def init_client(
    service: str,
    client: Optional[botocore.client.BaseClient] = None,
    session: Optional[boto3.Session] = None,
    **client_kwargs,
) -> botocore.client.BaseClient:
    """
    Utility function used throughout `asgfetch.aws` to selectively initialize
    boto clients.

    Args:
        service: service to produce client for (e.g. "ec2")
        client: if not None, simply return `client`
        session: if not None and `client` is None, initialize newly-made
            client using this session. Otherwise use a default session. Does
            nothing if `client` is not None.
        client_kwargs: passed to make_boto_client() or boto client
            constructor. `region` is accepted as an alias for `region_name`
            when a session is given.

    Returns:
        boto client for `service`.
    """
    if client is not None:
        return client
    if session is not None:
        if "region" in client_kwargs:
            client_kwargs["region_name"] = client_kwargs.pop("region")
        return session.client(service, **client_kwargs)
    return make_boto_client(service, **client_kwargs)


def autopage(
    client: botocore.client.BaseClient,
    operation: str,
    agg: Optional[Union[str, Sequence[str], Callable]] = None,
    **api_kwargs: Any,
) -> tuple:
    """
    Perform an AWS API call that returns paginated results, greedily page
    through all of them, and return the aggregated results.

    Args:
        client: boto Client object to make API call
        operation: name of API call to perform
        agg: optional special aggregator. If `agg` is a `str`, concatenate the
            values of the key named `agg` from all pages of the response. If
            `agg` is callable, feed the pager to `agg`. If not specified,
            aggregate the values of the key whose value is longest in the
            first response.
        **api_kwargs: kwargs to pass to the API call.

    Returns:
        Tuple of aggregated responses, format depending on `agg`.
    """
    assert client.can_paginate(operation)
    if isinstance(agg, str):
        agg = mapcat(get(agg))
    pager = iter(client.get_paginator(operation).paginate(**api_kwargs))
    if agg is not None:
        return tuple(agg(pager))
    page = next(pager)
    lengths = [(k, len(v)) for k, v in page.items() if isinstance(v, list)]
    aggkey = [k for k, v in lengths if v == max([v for _, v in lengths])][0]
    return tuple(get(aggkey)(page) + list(mapcat(get(aggkey))(pager)))

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-aws",
        action="store_true",
        default=False,
        help="run live AWS tests",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-aws"):
        return
    skip_aws = pytest.mark.skip(reason="live AWS test; use --run-aws to run")
    for item in items:
        if "live_aws" in item.keywords:
            item.add_marker(skip_aws)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "live_aws: test makes real calls to the AWS API"
    )

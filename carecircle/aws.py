import os

import boto3

from carecircle.config import get_settings


def _local_kwargs(region: str) -> dict:
    # Inside a LocalStack Lambda container, LOCALSTACK_HOSTNAME points
    # to the LocalStack gateway. Fall back to localhost for direct use.
    ls_host = os.environ.get("LOCALSTACK_HOSTNAME", "localhost")
    return {
        "endpoint_url": f"http://{ls_host}:4566",
        "region_name": region,
        "aws_access_key_id": "test",
        "aws_secret_access_key": "test",
    }


def get_client(service: str):
    """Return a boto3 client, routed to LocalStack when ENV=local."""
    settings = get_settings()
    if settings.is_local:
        return boto3.client(service, **_local_kwargs(settings.region))
    return boto3.client(service, region_name=settings.region)


def get_resource(service: str):
    settings = get_settings()
    if settings.is_local:
        return boto3.resource(service, **_local_kwargs(settings.region))
    return boto3.resource(service, region_name=settings.region)

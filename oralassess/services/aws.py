"""Shared AWS helpers for service clients."""

from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.config import Config

from oralassess.config.settings import settings


def aws_credentials() -> dict[str, str]:
    """Return explicit credentials from the S3 settings, or nothing to use the default chain."""

    if settings.s3.access_key and settings.s3.secret_key:
        return {
            "aws_access_key_id": settings.s3.access_key,
            "aws_secret_access_key": settings.s3.secret_key,
        }
    return {}


def create_boto3_client(
    service_name: str,
    *,
    region_name: str | None = None,
    aws_access_key_id: str | None = None,
    aws_secret_access_key: str | None = None,
    config: Optional[Config] = None,
) -> Any:
    """Instantiate a boto3 client, preferring explicit keys over configured ones."""

    client_kwargs: dict[str, Any] = {"region_name": region_name or settings.s3.region}
    if config is not None:
        client_kwargs["config"] = config
    if aws_access_key_id and aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = aws_access_key_id
        client_kwargs["aws_secret_access_key"] = aws_secret_access_key
    else:
        client_kwargs.update(aws_credentials())
    return boto3.client(service_name, **client_kwargs)


__all__ = ["aws_credentials", "create_boto3_client"]

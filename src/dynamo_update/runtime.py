from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config

from .errors import ValidationError


def is_lambda_environment(environ: Mapping[str, str] = os.environ) -> bool:
    return bool(
        environ.get("AWS_LAMBDA_FUNCTION_NAME") or "AWS_Lambda" in (environ.get("AWS_EXECUTION_ENV") or "")
    )


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise ValidationError(f"{name} must be a number (got {raw!r})") from err


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValidationError(f"{name} must be an integer (got {raw!r})") from err


@dataclass(frozen=True)
class ClientSettings:
    region: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = 5.0
    read_timeout: float = 10.0
    max_attempts: int = 3

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> ClientSettings:
        lambda_env = is_lambda_environment(environ)
        connect_default = 1.0 if lambda_env else cls.connect_timeout
        read_default = 3.0 if lambda_env else cls.read_timeout
        settings = cls(
            region=environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None,
            endpoint_url=environ.get("DYNAMODB_ENDPOINT") or None,
            connect_timeout=_env_float(environ, "DYNAMO_UPDATE_CONNECT_TIMEOUT", connect_default),
            read_timeout=_env_float(environ, "DYNAMO_UPDATE_READ_TIMEOUT", read_default),
            max_attempts=_env_int(environ, "DYNAMO_UPDATE_MAX_ATTEMPTS", cls.max_attempts),
        )
        if settings.max_attempts < 1:
            raise ValidationError("DYNAMO_UPDATE_MAX_ATTEMPTS must be >= 1")
        return settings


def create_boto3_config(
    *,
    connect_timeout: float = ClientSettings.connect_timeout,
    read_timeout: float = ClientSettings.read_timeout,
    max_attempts: int = ClientSettings.max_attempts,
) -> Config:
    return Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
    )


def create_dynamodb_client(
    settings: ClientSettings | None = None,
    *,
    session: Any | None = None,
) -> Any:
    settings = settings or ClientSettings.from_env()
    config = create_boto3_config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        max_attempts=settings.max_attempts,
    )

    sess = session or boto3.session.Session(region_name=settings.region)
    kwargs: dict[str, Any] = {"region_name": settings.region, "config": config}
    if settings.endpoint_url:
        kwargs["endpoint_url"] = settings.endpoint_url
    return cast(Any, sess).client("dynamodb", **kwargs)

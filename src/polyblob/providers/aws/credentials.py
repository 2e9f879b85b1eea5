"""Resolves a :class:`CredentialsOverrider` into boto3 client keyword arguments."""

import logging
from typing import Optional

import boto3

from ...config import CredentialsOverrider, CredentialsType

log = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "polyblob"


def resolve_credentials(overrider: Optional[CredentialsOverrider], region: Optional[str]) -> dict:
    """Return the credential kwargs for ``boto3.client``.

    An empty dict means "use the default credential chain". Assumed-role
    credentials are fetched once, when the client is built, and are not
    refreshed afterwards.
    """
    if overrider is None or overrider.type == CredentialsType.DEFAULT:
        return {}

    if overrider.type == CredentialsType.SESSION:
        creds = overrider.session_credentials
        kwargs = {
            "aws_access_key_id": creds.access_key_id,
            "aws_secret_access_key": creds.secret_access_key,
        }
        if creds.session_token:
            kwargs["aws_session_token"] = creds.session_token
        return kwargs

    sts_kwargs = {"region_name": region} if region else {}
    sts = boto3.client("sts", **sts_kwargs)
    params = {
        "RoleArn": overrider.role,
        "RoleSessionName": overrider.session_name or DEFAULT_SESSION_NAME,
    }
    if overrider.duration_seconds:
        params["DurationSeconds"] = overrider.duration_seconds
    log.info("Assuming role %s for session %s", overrider.role, params["RoleSessionName"])
    assumed = sts.assume_role(**params)["Credentials"]
    return {
        "aws_access_key_id": assumed["AccessKeyId"],
        "aws_secret_access_key": assumed["SecretAccessKey"],
        "aws_session_token": assumed["SessionToken"],
    }

"""
AWS region discovery.

An explicit region wins. ``"auto"`` (or nothing) falls back to the standard
AWS environment variables and then to the EC2 instance metadata service,
queried with an IMDSv2 session token over ``httpx``.
"""

from __future__ import annotations

import os
from typing import Mapping

import httpx

from .diagnostics import debug
from .errors import RegionUnresolvedError

AUTO = "auto"
IMDS_BASE_URL = "http://169.254.169.254"
_TOKEN_PATH = "/latest/api/token"
_REGION_PATH = "/latest/meta-data/placement/region"
_TOKEN_TTL_SECONDS = "60"


async def fetch_instance_region(
    *,
    timeout_seconds: float = 1.0,
    client: httpx.AsyncClient | None = None,
    base_url: str = IMDS_BASE_URL,
) -> str | None:
    """Ask the instance metadata service for the region, or None if unreachable."""
    owns_client = client is None
    http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
    try:
        token_resp = await http.put(
            _TOKEN_PATH,
            headers={"X-aws-ec2-metadata-token-ttl-seconds": _TOKEN_TTL_SECONDS},
        )
        headers: dict[str, str] = {}
        if token_resp.status_code == 200:
            headers["X-aws-ec2-metadata-token"] = token_resp.text.strip()
        resp = await http.get(_REGION_PATH, headers=headers)
        if resp.status_code != 200:
            debug("region", "metadata service refused", status_code=resp.status_code)
            return None
        return resp.text.strip() or None
    except httpx.HTTPError as exc:
        debug("region", "metadata service unreachable", error=str(exc))
        return None
    finally:
        if owns_client:
            await http.aclose()


async def resolve_region(
    configured: str | None,
    *,
    env: Mapping[str, str] | None = None,
    use_instance_metadata: bool = True,
    metadata_timeout_seconds: float = 1.0,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Determine the region to ship to.

    Raises:
        RegionUnresolvedError: when no source yields a region.
    """
    if configured and configured.strip().lower() != AUTO:
        return configured.strip()

    environ = os.environ if env is None else env
    for key in ("AWS_REGION", "AWS_DEFAULT_REGION"):
        value = environ.get(key, "").strip()
        if value:
            debug("region", "region from environment", variable=key, region=value)
            return value

    if use_instance_metadata:
        region = await fetch_instance_region(
            timeout_seconds=metadata_timeout_seconds, client=client
        )
        if region:
            debug("region", "region from instance metadata", region=region)
            return region

    raise RegionUnresolvedError("could not determine the AWS region")


__all__ = ["AUTO", "fetch_instance_region", "resolve_region"]

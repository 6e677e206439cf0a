from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from controlplane.services.config.errors import ConfigurationError


@dataclass(frozen=True)
class AwsConfig:
    """Shared client settings for every AWS adapter.

    `endpoint_url` is only set when talking to a local emulator; in AWS it stays None
    and botocore resolves the regional endpoint itself.
    """

    region_name: str
    endpoint_url: Optional[str] = None

    @staticmethod
    def from_env() -> "AwsConfig":
        region_name = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
        if not region_name:
            raise ConfigurationError("Missing required environment variable: AWS_REGION (or AWS_DEFAULT_REGION)")

        return AwsConfig(region_name=region_name, endpoint_url=os.getenv("AWS_ENDPOINT_URL") or None)

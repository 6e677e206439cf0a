from __future__ import annotations

import logging
from typing import Any, Optional

import aioboto3
from botocore.exceptions import ClientError

from controlplane.services.config import AwsConfig

logger = logging.getLogger(__name__)


class SSMServiceError(RuntimeError):
    pass


def _is_parameter_not_found(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ParameterNotFound"


class SSMService:
    """Parameter registry backed by SSM Parameter Store (plain `String` parameters)."""

    def __init__(self, config: AwsConfig) -> None:
        self._config = config
        self._session = aioboto3.Session()

    def _client(self) -> Any:
        return self._session.client(
            "ssm",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    async def get(self, name: str) -> Optional[str]:
        try:
            ssm_client: Any = self._client()
            async with ssm_client as ssm:
                response = await ssm.get_parameter(Name=name)
            return response.get("Parameter", {}).get("Value")
        except ClientError as exc:
            if _is_parameter_not_found(exc):
                return None
            logger.exception("SSM get_parameter failed")
            raise SSMServiceError(f"Failed to read parameter: {name}") from exc
        except Exception as exc:
            logger.exception("SSM get_parameter failed")
            raise SSMServiceError(f"Failed to read parameter: {name}") from exc

    async def put(self, name: str, value: str) -> None:
        try:
            ssm_client: Any = self._client()
            async with ssm_client as ssm:
                await ssm.put_parameter(Name=name, Value=value, Type="String", Overwrite=True)
        except Exception as exc:
            logger.exception("SSM put_parameter failed")
            raise SSMServiceError(f"Failed to write parameter: {name}") from exc

    async def delete(self, name: str) -> bool:
        """Delete a parameter. Returns False when it was already absent."""

        try:
            ssm_client: Any = self._client()
            async with ssm_client as ssm:
                await ssm.delete_parameter(Name=name)
            return True
        except ClientError as exc:
            if _is_parameter_not_found(exc):
                return False
            logger.exception("SSM delete_parameter failed")
            raise SSMServiceError(f"Failed to delete parameter: {name}") from exc
        except Exception as exc:
            logger.exception("SSM delete_parameter failed")
            raise SSMServiceError(f"Failed to delete parameter: {name}") from exc

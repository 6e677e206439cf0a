from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

import aioboto3
from botocore.exceptions import ClientError

from controlplane.models.tenant import InfraStatus
from controlplane.services.config import AwsConfig
from controlplane.services.interfaces import StackDescription

logger = logging.getLogger(__name__)


class CloudFormationServiceError(RuntimeError):
    pass


class StackOperationError(CloudFormationServiceError):
    """The stack reached a terminal failure state."""


class StackAlreadyExistsError(CloudFormationServiceError):
    """create_stack was called for a name that already has a live stack."""


def _is_missing_stack(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    return error.get("Code") == "ValidationError" and "does not exist" in (error.get("Message") or "")


def _is_missing_object(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code")
    return code in {"404", "NoSuchKey", "NotFound"}


class CloudFormationService:
    """Stack provisioner: CloudFormation for stacks, S3 for the template they are created from."""

    _POLL_INTERVAL_SECONDS: float = 10.0
    _CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]

    def __init__(self, config: AwsConfig, *, poll_interval_seconds: Optional[float] = None) -> None:
        self._config = config
        self._session = aioboto3.Session()
        self._poll_interval = poll_interval_seconds or self._POLL_INTERVAL_SECONDS

    def _client(self, service_name: str) -> Any:
        return self._session.client(
            service_name,
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    def _template_url(self, *, bucket: str, key: str) -> str:
        if self._config.endpoint_url:
            return f"{self._config.endpoint_url.rstrip('/')}/{bucket}/{key}"
        return f"https://{bucket}.s3.{self._config.region_name}.amazonaws.com/{key}"

    async def ensure_template(self, *, bucket: str, key: str, body: str) -> str:
        """Upload `body` to s3://bucket/key unless an object is already there. Returns the template URL."""

        try:
            s3_client: Any = self._client("s3")
            async with s3_client as s3:
                try:
                    await s3.head_object(Bucket=bucket, Key=key)
                except ClientError as exc:
                    if not _is_missing_object(exc):
                        raise
                    logger.info("Stack template missing, uploading embedded copy (s3://%s/%s)", bucket, key)
                    await s3.put_object(
                        Bucket=bucket,
                        Key=key,
                        Body=body.encode("utf-8"),
                        ContentType="text/yaml",
                    )
        except Exception as exc:
            logger.exception("Stack template upload failed")
            raise CloudFormationServiceError(f"Failed to ensure stack template (s3://{bucket}/{key})") from exc

        return self._template_url(bucket=bucket, key=key)

    async def create_stack(
        self,
        *,
        stack_name: str,
        template_url: str,
        parameters: dict[str, str],
        tags: dict[str, str],
    ) -> str:
        try:
            cfn_client: Any = self._client("cloudformation")
            async with cfn_client as cfn:
                response = await cfn.create_stack(
                    StackName=stack_name,
                    TemplateURL=template_url,
                    Parameters=[{"ParameterKey": k, "ParameterValue": v} for k, v in parameters.items()],
                    Capabilities=self._CAPABILITIES,
                    Tags=[{"Key": k, "Value": v} for k, v in tags.items()],
                    OnFailure="ROLLBACK",
                )
            return str(response.get("StackId") or "")
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "AlreadyExistsException":
                logger.info("Stack %s already exists", stack_name)
                raise StackAlreadyExistsError(f"Stack already exists: {stack_name}") from exc
            logger.exception("CloudFormation create_stack failed")
            raise CloudFormationServiceError(f"Failed to create stack: {stack_name}") from exc
        except Exception as exc:
            logger.exception("CloudFormation create_stack failed")
            raise CloudFormationServiceError(f"Failed to create stack: {stack_name}") from exc

    async def describe_stack(self, stack_name: str) -> Optional[StackDescription]:
        """Describe a stack, or return None when it does not exist."""

        try:
            cfn_client: Any = self._client("cloudformation")
            async with cfn_client as cfn:
                response = await cfn.describe_stacks(StackName=stack_name)
        except ClientError as exc:
            if _is_missing_stack(exc):
                return None
            logger.exception("CloudFormation describe_stacks failed")
            raise CloudFormationServiceError(f"Failed to describe stack: {stack_name}") from exc
        except Exception as exc:
            logger.exception("CloudFormation describe_stacks failed")
            raise CloudFormationServiceError(f"Failed to describe stack: {stack_name}") from exc

        stacks = response.get("Stacks") or []
        if not stacks:
            return None

        stack = stacks[0]
        outputs = {
            str(o.get("OutputKey")): str(o.get("OutputValue"))
            for o in stack.get("Outputs") or []
            if o.get("OutputKey") and o.get("OutputValue") is not None
        }
        return StackDescription(
            stack_name=stack_name,
            status=str(stack.get("StackStatus") or ""),
            stack_id=stack.get("StackId"),
            reason=stack.get("StackStatusReason"),
            outputs=outputs,
        )

    async def wait_for_create(self, *, stack_name: str, max_wait_seconds: float) -> bool:
        """Poll until the stack is CREATE_COMPLETE.

        Returns False when `max_wait_seconds` elapses first; raises StackOperationError
        when the stack fails or disappears.
        """

        deadline = time.monotonic() + max_wait_seconds
        while True:
            description = await self.describe_stack(stack_name)
            if description is None:
                raise StackOperationError(f"Stack disappeared while waiting for creation: {stack_name}")

            state = description.infra_status
            if state == InfraStatus.READY:
                return True
            if state in {InfraStatus.FAILED, InfraStatus.DELETING, InfraStatus.DELETED}:
                raise StackOperationError(
                    f"Stack entered unexpected status during creation: {stack_name} "
                    f"(status={description.status}, reason={description.reason or 'n/a'})"
                )

            if time.monotonic() + self._poll_interval > deadline:
                return False
            await asyncio.sleep(self._poll_interval)

    async def delete_stack(self, stack_name: str) -> None:
        try:
            cfn_client: Any = self._client("cloudformation")
            async with cfn_client as cfn:
                await cfn.delete_stack(StackName=stack_name)
        except Exception as exc:
            logger.exception("CloudFormation delete_stack failed")
            raise CloudFormationServiceError(f"Failed to delete stack: {stack_name}") from exc

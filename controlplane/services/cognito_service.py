from __future__ import annotations

import logging
from typing import Any, Optional

import aioboto3
from botocore.exceptions import ClientError

from controlplane.services.config import AwsConfig
from controlplane.services.interfaces import IdentityUser

logger = logging.getLogger(__name__)


class CognitoServiceError(RuntimeError):
    pass


class IdentityUserExistsError(CognitoServiceError):
    pass


def _code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _attributes(raw: list[dict[str, Any]]) -> dict[str, str]:
    return {str(a.get("Name")): str(a.get("Value")) for a in raw or [] if a.get("Name")}


def _attribute_list(attributes: dict[str, str]) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in attributes.items()]


class CognitoService:
    """Identity provider backed by a Cognito user pool. Usernames are email addresses."""

    def __init__(self, config: AwsConfig, *, user_pool_id: str) -> None:
        self._config = config
        self._user_pool_id = user_pool_id
        self._session = aioboto3.Session()

    def _client(self) -> Any:
        return self._session.client(
            "cognito-idp",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    async def get_user(self, username: str) -> Optional[IdentityUser]:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                response = await idp.admin_get_user(UserPoolId=self._user_pool_id, Username=username)
        except ClientError as exc:
            if _code(exc) == "UserNotFoundException":
                return None
            logger.exception("Cognito admin_get_user failed")
            raise CognitoServiceError(f"Failed to read identity user: {username}") from exc
        except Exception as exc:
            logger.exception("Cognito admin_get_user failed")
            raise CognitoServiceError(f"Failed to read identity user: {username}") from exc

        attributes = _attributes(response.get("UserAttributes") or [])
        return IdentityUser(
            username=str(response.get("Username") or username),
            sub=attributes.get("sub"),
            status=response.get("UserStatus"),
            enabled=bool(response.get("Enabled", True)),
            attributes=attributes,
        )

    async def create_user(
        self, username: str, *, attributes: dict[str, str], temporary_password: str
    ) -> IdentityUser:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                response = await idp.admin_create_user(
                    UserPoolId=self._user_pool_id,
                    Username=username,
                    UserAttributes=_attribute_list(attributes),
                    TemporaryPassword=temporary_password,
                    MessageAction="SUPPRESS",
                )
        except ClientError as exc:
            if _code(exc) == "UsernameExistsException":
                raise IdentityUserExistsError(f"Identity user already exists: {username}") from exc
            logger.exception("Cognito admin_create_user failed")
            raise CognitoServiceError(f"Failed to create identity user: {username}") from exc
        except Exception as exc:
            logger.exception("Cognito admin_create_user failed")
            raise CognitoServiceError(f"Failed to create identity user: {username}") from exc

        user = response.get("User") or {}
        created = _attributes(user.get("Attributes") or [])
        return IdentityUser(
            username=str(user.get("Username") or username),
            sub=created.get("sub"),
            status=user.get("UserStatus"),
            enabled=bool(user.get("Enabled", True)),
            attributes=created,
        )

    async def set_password(self, username: str, password: str, *, permanent: bool = True) -> None:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                await idp.admin_set_user_password(
                    UserPoolId=self._user_pool_id,
                    Username=username,
                    Password=password,
                    Permanent=permanent,
                )
        except Exception as exc:
            logger.exception("Cognito admin_set_user_password failed")
            raise CognitoServiceError(f"Failed to set password for identity user: {username}") from exc

    async def update_attributes(self, username: str, attributes: dict[str, str]) -> None:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                await idp.admin_update_user_attributes(
                    UserPoolId=self._user_pool_id,
                    Username=username,
                    UserAttributes=_attribute_list(attributes),
                )
        except Exception as exc:
            logger.exception("Cognito admin_update_user_attributes failed")
            raise CognitoServiceError(f"Failed to update attributes for identity user: {username}") from exc

    async def add_to_group(self, username: str, group_name: str) -> None:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                await idp.admin_add_user_to_group(
                    UserPoolId=self._user_pool_id,
                    Username=username,
                    GroupName=group_name,
                )
        except Exception as exc:
            logger.exception("Cognito admin_add_user_to_group failed")
            raise CognitoServiceError(f"Failed to add {username} to group {group_name}") from exc

    async def remove_from_group(self, username: str, group_name: str) -> None:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                await idp.admin_remove_user_from_group(
                    UserPoolId=self._user_pool_id,
                    Username=username,
                    GroupName=group_name,
                )
        except Exception as exc:
            logger.exception("Cognito admin_remove_user_from_group failed")
            raise CognitoServiceError(f"Failed to remove {username} from group {group_name}") from exc

    async def list_user_groups(self, username: str) -> list[str]:
        groups: list[str] = []
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                kwargs: dict[str, Any] = {"UserPoolId": self._user_pool_id, "Username": username}
                while True:
                    response = await idp.admin_list_groups_for_user(**kwargs)
                    groups.extend(str(g.get("GroupName")) for g in response.get("Groups") or [])
                    token = response.get("NextToken")
                    if not token:
                        break
                    kwargs["NextToken"] = token
            return groups
        except Exception as exc:
            logger.exception("Cognito admin_list_groups_for_user failed")
            raise CognitoServiceError(f"Failed to list groups for identity user: {username}") from exc

    async def group_exists(self, group_name: str) -> bool:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                await idp.get_group(UserPoolId=self._user_pool_id, GroupName=group_name)
            return True
        except ClientError as exc:
            if _code(exc) == "ResourceNotFoundException":
                return False
            logger.exception("Cognito get_group failed")
            raise CognitoServiceError(f"Failed to read identity group: {group_name}") from exc
        except Exception as exc:
            logger.exception("Cognito get_group failed")
            raise CognitoServiceError(f"Failed to read identity group: {group_name}") from exc

    async def create_group(self, group_name: str, *, description: str = "", precedence: int = 0) -> None:
        try:
            idp_client: Any = self._client()
            async with idp_client as idp:
                await idp.create_group(
                    UserPoolId=self._user_pool_id,
                    GroupName=group_name,
                    Description=description,
                    Precedence=precedence,
                )
        except ClientError as exc:
            if _code(exc) == "GroupExistsException":
                return
            logger.exception("Cognito create_group failed")
            raise CognitoServiceError(f"Failed to create identity group: {group_name}") from exc
        except Exception as exc:
            logger.exception("Cognito create_group failed")
            raise CognitoServiceError(f"Failed to create identity group: {group_name}") from exc

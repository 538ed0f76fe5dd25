"""Credential issuer backed by AWS API Gateway API keys."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from keyrotation.errors import BackendError
from keyrotation.issuer.base import IssuedCredential, IssuedKeySummary, RevokeResult
from keyrotation.utils.aws import BotoCoreError, ClientError, error_code, run_blocking, translate

LIST_PAGE_SIZE = 500


class ApiGatewayIssuer:
    def __init__(self, client, *, key_name: str = "RotatedAPIKey"):
        self._client = client
        self._key_name = key_name

    async def _call(self, operation: str, **params: Any) -> Dict[str, Any]:
        try:
            return await run_blocking(getattr(self._client, operation), **params)
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, backend="apigateway", operation=operation) from exc

    async def create_credential(self) -> IssuedCredential:
        response = await self._call(
            "create_api_key",
            name=self._key_name,
            enabled=True,
            generateDistinctId=True,
        )
        key_id, value = response.get("id"), response.get("value")
        if not key_id or not value:
            raise BackendError("create_api_key returned no id/value", backend="apigateway", operation="create_api_key")
        return IssuedCredential(key_id=key_id, value=value)

    async def bind_to_usage_plan(self, key_id: str, usage_plan_id: str) -> None:
        try:
            await run_blocking(
                self._client.create_usage_plan_key,
                usagePlanId=usage_plan_id,
                keyId=key_id,
                keyType="API_KEY",
            )
        except ClientError as exc:
            # A retried bind whose first attempt landed
            if error_code(exc) == "ConflictException":
                return
            raise translate(exc, backend="apigateway", operation="create_usage_plan_key") from exc
        except BotoCoreError as exc:
            raise translate(exc, backend="apigateway", operation="create_usage_plan_key") from exc

    async def revoke_credential(self, key_id: str) -> RevokeResult:
        try:
            await run_blocking(self._client.delete_api_key, apiKey=key_id)
        except ClientError as exc:
            if error_code(exc) == "NotFoundException":
                return RevokeResult.already_absent
            raise translate(exc, backend="apigateway", operation="delete_api_key") from exc
        except BotoCoreError as exc:
            raise translate(exc, backend="apigateway", operation="delete_api_key") from exc
        return RevokeResult.revoked

    async def list_credentials(self) -> List[IssuedKeySummary]:
        summaries: List[IssuedKeySummary] = []
        params: Dict[str, Any] = {"nameQuery": self._key_name, "limit": LIST_PAGE_SIZE}
        while True:
            page = await self._call("get_api_keys", **params)
            for item in page.get("items", []):
                # nameQuery is a prefix match
                if item.get("name") != self._key_name:
                    continue
                created = item.get("createdDate")
                if isinstance(created, datetime) and created.tzinfo is None:
                    created = created.replace(tzinfo=timezone.utc)
                summaries.append(
                    IssuedKeySummary(key_id=item["id"], name=item["name"], created_at=created)
                )
            position = page.get("position")
            if not position:
                return summaries
            params["position"] = position

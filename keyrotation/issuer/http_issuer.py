"""Credential issuer reached over a plain REST API.

Resource shape mirrors API Gateway's key management endpoints::

    POST   /apikeys                   {"name", "enabled"} -> {"id", "value"}
    POST   /usageplans/{plan}/keys    {"keyId", "keyType"}     (409 = already bound)
    DELETE /apikeys/{id}                                       (404 = already gone)
    GET    /apikeys?name=...&position=...  -> {"items": [...], "position"}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from keyrotation.errors import BackendError, TransientBackendError
from keyrotation.issuer.base import IssuedCredential, IssuedKeySummary, RevokeResult
from keyrotation.models.records import parse_timestamp

_TRANSIENT_STATUS = {408, 429, 500, 502, 503, 504}


class HttpIssuer:
    def __init__(self, client: httpx.AsyncClient, *, key_name: str = "RotatedAPIKey"):
        self._client = client
        self._key_name = key_name

    @classmethod
    def from_endpoint(
        cls,
        endpoint: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        key_name: str = "RotatedAPIKey",
    ) -> "HttpIssuer":
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        client = httpx.AsyncClient(base_url=endpoint.rstrip("/"), timeout=timeout, headers=headers)
        return cls(client, key_name=key_name)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        ok_statuses: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise TransientBackendError(f"{operation}: {exc}", backend="http", operation=operation) from exc

        if resp.status_code in ok_statuses or resp.is_success:
            return resp
        error_cls = TransientBackendError if resp.status_code in _TRANSIENT_STATUS else BackendError
        raise error_cls(
            f"{operation}: HTTP {resp.status_code} {resp.text[:200]}",
            backend="http",
            operation=operation,
        )

    async def create_credential(self) -> IssuedCredential:
        resp = await self._request(
            "POST", "/apikeys", "create_credential", json={"name": self._key_name, "enabled": True}
        )
        body = resp.json()
        key_id, value = body.get("id"), body.get("value")
        if not key_id or not value:
            raise BackendError("create_credential returned no id/value", backend="http", operation="create_credential")
        return IssuedCredential(key_id=key_id, value=value)

    async def bind_to_usage_plan(self, key_id: str, usage_plan_id: str) -> None:
        await self._request(
            "POST",
            f"/usageplans/{quote(usage_plan_id, safe='')}/keys",
            "bind_to_usage_plan",
            ok_statuses=(409,),
            json={"keyId": key_id, "keyType": "API_KEY"},
        )

    async def revoke_credential(self, key_id: str) -> RevokeResult:
        path = f"/apikeys/{quote(key_id, safe='')}"
        resp = await self._request("DELETE", path, "revoke_credential", ok_statuses=(404,))
        return RevokeResult.already_absent if resp.status_code == 404 else RevokeResult.revoked

    async def list_credentials(self) -> List[IssuedKeySummary]:
        summaries: List[IssuedKeySummary] = []
        params: Dict[str, Any] = {"name": self._key_name}
        while True:
            resp = await self._request("GET", "/apikeys", "list_credentials", params=params)
            body = resp.json()
            for item in body.get("items", []):
                if item.get("name") != self._key_name:
                    continue
                created = item.get("createdDate")
                summaries.append(
                    IssuedKeySummary(
                        key_id=item["id"],
                        name=item["name"],
                        created_at=parse_timestamp(created) if created else None,
                    )
                )
            position = body.get("position")
            if not position:
                return summaries
            params["position"] = position

"""Credential issuer backends."""

from __future__ import annotations

from keyrotation.issuer.apigateway_issuer import ApiGatewayIssuer
from keyrotation.issuer.base import CredentialIssuer, IssuedCredential, IssuedKeySummary, RevokeResult
from keyrotation.issuer.http_issuer import HttpIssuer

__all__ = [
    "ApiGatewayIssuer",
    "CredentialIssuer",
    "HttpIssuer",
    "IssuedCredential",
    "IssuedKeySummary",
    "RevokeResult",
]

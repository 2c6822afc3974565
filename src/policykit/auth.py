from __future__ import annotations

import logging
import time
from typing import Optional

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import CertificateCredential, ClientAssertionCredential, ClientSecretCredential

from .config import Settings, get_settings
from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN_S = 60.0


def build_credential(settings: Optional[Settings] = None) -> TokenCredential:
    """Client-credential flow for the B2C app registration.

    A certificate wins over a client assertion, which wins over a client secret.
    """
    settings = settings or get_settings()
    if not settings.tenant or not settings.client_id:
        raise AuthenticationError("B2C_TENANT and B2C_CLIENT_ID are required to authenticate")
    if settings.client_certificate_path:
        logger.debug("Authenticating %s with a client certificate", settings.client_id)
        return CertificateCredential(
            settings.tenant,
            settings.client_id,
            certificate_path=settings.client_certificate_path,
            password=settings.client_certificate_password,
        )
    if settings.client_assertion:
        logger.debug("Authenticating %s with a client assertion", settings.client_id)
        assertion = settings.client_assertion
        return ClientAssertionCredential(settings.tenant, settings.client_id, lambda: assertion)
    if settings.client_secret:
        logger.debug("Authenticating %s with a client secret", settings.client_id)
        return ClientSecretCredential(settings.tenant, settings.client_id, settings.client_secret)
    raise AuthenticationError(
        "No client secret, client assertion or client certificate configured for "
        f"{settings.client_id}"
    )


class GraphTokenProvider:
    def __init__(self, credential: TokenCredential, scope: Optional[str] = None):
        self.credential = credential
        self.scope = scope or get_settings().graph_scope
        self._token: Optional[str] = None
        self._token_expiry: float = 0.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "GraphTokenProvider":
        settings = settings or get_settings()
        return cls(build_credential(settings), settings.graph_scope)

    def get_access_token(self) -> str:
        now = time.time()
        if self._token and now < self._token_expiry:
            return self._token
        try:
            access_token = self.credential.get_token(self.scope)
        except ClientAuthenticationError as exc:
            raise AuthenticationError(f"Failed to acquire an authentication token: {exc.message}") from exc
        if not access_token or not access_token.token:
            raise AuthenticationError("Failed to acquire an authentication token.")
        self._token = access_token.token
        self._token_expiry = float(access_token.expires_on) - TOKEN_REFRESH_MARGIN_S
        return self._token

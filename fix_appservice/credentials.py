from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta
from pathlib import Path
from ssl import SSLContext, create_default_context, CERT_NONE
from typing import Optional, List

from attr import define
from azure.core.credentials import AccessToken
from azure.core.credentials_async import AsyncTokenCredential
from azure.identity.aio import DefaultAzureCredential
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.base import Certificate

from fix_appservice.config import AppServiceConfig, AuthType, CertificateSettings

log = logging.getLogger("fix.appservice")

CertificateSuffixes = (".pem", ".crt", ".cer")


class CredentialProvider(ABC):
    """
    Produces the authorization for outbound control plane calls.
    The provider is created once, based on the configuration, and shared by all requests.
    """

    def __init__(self, verify_ssl: bool = True, logger: Optional[logging.Logger] = None) -> None:
        self.verify_ssl = verify_ssl
        self.log = logger or log
        self._ssl_context: Optional[SSLContext] = None

    @abstractmethod
    async def authorization_header(self) -> Optional[str]:
        """
        Value of the Authorization header or None, if the request should be sent without one.
        """

    def ssl_context(self) -> SSLContext:
        if self._ssl_context is None:
            self._ssl_context = self._create_ssl_context()
        return self._ssl_context

    def _create_ssl_context(self) -> SSLContext:
        context = create_default_context()
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = CERT_NONE
        return context

    async def close(self) -> None:
        pass


class AnonymousProvider(CredentialProvider):
    async def authorization_header(self) -> Optional[str]:
        return None


class BearerTokenProvider(CredentialProvider):
    """
    Bearer token from the default Azure credential chain:
    environment, managed identity, developer tooling and CLI credentials.
    Interactive browser prompts are never used.
    Tokens are cached until shortly before they expire.
    """

    def __init__(
        self,
        scope: str,
        credential: Optional[AsyncTokenCredential] = None,
        refresh_before_expiry: timedelta = timedelta(minutes=5),
        verify_ssl: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(verify_ssl, logger)
        self.scope = scope
        self.credential = credential or DefaultAzureCredential(exclude_interactive_browser_credential=True)
        self.refresh_seconds = refresh_before_expiry.total_seconds()
        self._token: Optional[AccessToken] = None
        # created on first use: it needs to live in the running event loop
        self._refresh_lock: Optional[asyncio.Lock] = None
        self.log.info(f"Bearer token authentication configured for scope {scope}")

    def _valid_token(self) -> Optional[AccessToken]:
        token = self._token
        if token is None or token.expires_on - self.refresh_seconds <= time.time():
            return None
        return token

    async def authorization_header(self) -> Optional[str]:
        if token := self._valid_token():
            return f"Bearer {token.token}"
        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()
        # concurrent callers wait for a single refresh
        async with self._refresh_lock:
            if token := self._valid_token():
                return f"Bearer {token.token}"
            try:
                token = await self.credential.get_token(self.scope)
            except Exception as e:
                self.log.error(
                    "Failed to acquire access token. "
                    "Ensure you are logged in via Azure CLI or have proper credentials configured.",
                    exc_info=e,
                )
                raise
            expires = datetime.fromtimestamp(token.expires_on, timezone.utc)
            self.log.debug(f"Acquired access token, expires at {expires}")
            self._token = token
            return f"Bearer {token.token}"

    async def close(self) -> None:
        await self.credential.close()


def normalize_thumbprint(thumbprint: str) -> str:
    return "".join(c for c in thumbprint if c.isalnum()).upper()


def cert_thumbprint(cert: Certificate) -> str:
    return cert.fingerprint(hashes.SHA1()).hex().upper()  # nosec


@define
class StoreCertificate:
    certificate: Certificate
    cert_path: Path
    key_path: Optional[Path] = None

    @property
    def thumbprint(self) -> str:
        return cert_thumbprint(self.certificate)

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def issuer(self) -> str:
        return self.certificate.issuer.rfc4514_string()

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    @property
    def has_private_key(self) -> bool:
        return self.key_path is not None


class CertificateStore:
    """
    File based certificate store: <root>/<location>/<name>/*.pem
    A certificate file can hold the private key as well, or the key lives next to it with the suffix .key.
    """

    def __init__(self, root: str, location: str = "CurrentUser", name: str = "My") -> None:
        self.path = Path(os.path.expanduser(root)) / location / name

    def certificates(self) -> List[StoreCertificate]:
        if not self.path.is_dir():
            return []
        result = []
        for file in sorted(self.path.iterdir()):
            if file.suffix.lower() not in CertificateSuffixes:
                continue
            data = file.read_bytes()
            try:
                certs = x509.load_pem_x509_certificates(data)
            except ValueError:
                log.debug(f"Skip file {file}: not a PEM certificate")
                continue
            key_path = self.__key_file(file, data)
            result.extend(StoreCertificate(cert, file, key_path) for cert in certs)
        return result

    def find_by_thumbprint(self, thumbprint: str) -> Optional[StoreCertificate]:
        expected = normalize_thumbprint(thumbprint)
        return next((c for c in self.certificates() if c.thumbprint == expected), None)

    @staticmethod
    def __key_file(cert_file: Path, data: bytes) -> Optional[Path]:
        candidates = [(cert_file, data)]
        sibling = cert_file.with_suffix(".key")
        if sibling.is_file():
            candidates.append((sibling, sibling.read_bytes()))
        for path, content in candidates:
            try:
                serialization.load_pem_private_key(content, password=None)
                return path
            except (ValueError, TypeError):
                continue
        return None


class CertificateProvider(CredentialProvider):
    """
    TLS mutual authentication with a client certificate from the certificate store.
    The certificate is attached manually to the TLS handshake; there is no Authorization header.
    Problems with the certificate are logged, but never fail the construction:
    the handshake is attempted regardless and fails at the TLS layer.
    """

    def __init__(
        self, settings: CertificateSettings, verify_ssl: bool = True, logger: Optional[logging.Logger] = None
    ) -> None:
        super().__init__(verify_ssl, logger)
        self.settings = settings
        self.certificate = self.__load_certificate()

    def __load_certificate(self) -> Optional[StoreCertificate]:
        s = self.settings
        self.log.info(
            f"Certificate auth configured. Thumbprint: {s.thumbprint}, Store: {s.store_name}/{s.store_location}"
        )
        if not s.thumbprint:
            self.log.warning("Certificate thumbprint is not configured")
            return None
        cert = CertificateStore(s.store_path, s.store_location, s.store_name).find_by_thumbprint(s.thumbprint)
        if cert is None:
            self.log.error(
                f"Certificate with thumbprint {s.thumbprint} not found in {s.store_location}/{s.store_name}. "
                "Make sure the certificate is installed in the correct store and the thumbprint is correct."
            )
            return None
        self.log.info(
            f"Client certificate loaded: Subject={cert.subject}, Issuer={cert.issuer}, Thumbprint={cert.thumbprint}, "
            f"HasPrivateKey={cert.has_private_key}, NotBefore={cert.not_before}, NotAfter={cert.not_after}"
        )
        now = datetime.now(timezone.utc)
        if now < cert.not_before:
            self.log.warning(f"Certificate is not yet valid! NotBefore: {cert.not_before}")
        if now > cert.not_after:
            self.log.warning(f"Certificate has expired! NotAfter: {cert.not_after}")
        if not cert.has_private_key:
            self.log.error("Certificate does not have a private key - TLS client auth will fail!")
        return cert

    def _create_ssl_context(self) -> SSLContext:
        context = super()._create_ssl_context()
        if (cert := self.certificate) is not None and cert.key_path is not None:
            context.load_cert_chain(certfile=str(cert.cert_path), keyfile=str(cert.key_path))
        return context

    async def authorization_header(self) -> Optional[str]:
        return None


def create_credential_provider(config: AppServiceConfig, logger: Optional[logging.Logger] = None) -> CredentialProvider:
    """
    Select the authentication strategy. Called once during startup.
    """
    if config.auth_type == AuthType.arm:
        return BearerTokenProvider(config.token_scope, verify_ssl=config.verify_ssl, logger=logger)
    elif config.auth_type in (AuthType.private, AuthType.certificate):
        return CertificateProvider(config.private.certificate, verify_ssl=config.verify_ssl, logger=logger)
    else:
        return AnonymousProvider(config.verify_ssl, logger)

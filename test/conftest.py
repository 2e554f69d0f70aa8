from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union, Any, FrozenSet

from aiohttp.hdrs import METH_ANY
from aiohttp.test_utils import TestServer
from aiohttp.web import Request, Response, Application, route
from attr import define, field
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from pytest import fixture

from fix_appservice.arm_client import ArmClient
from fix_appservice.config import AppServiceConfig, AuthType, PrivateSettings
from fix_appservice.credentials import AnonymousProvider
from fix_appservice.types import Json

SiteId = "/subscriptions/sub-1/resourceGroups/rg-1/providers/Microsoft.Web/sites/shop-frontend"


def load_file(name: str) -> str:
    path = os.path.dirname(__file__) + f"/files/web/{name}"
    with open(path) as f:
        return f.read()


def load_json(name: str) -> Json:
    return json.loads(load_file(name))  # type: ignore


@define
class RecordedRequest:
    method: str
    path: str
    query: Dict[str, str]
    headers: Dict[str, str]
    body: Optional[Any]


@define
class FakeControlPlane:
    """
    Replies to every request with the response registered for the method and the longest matching path suffix.
    Unknown requests are answered with 404.
    """

    url: str = ""
    requests: List[RecordedRequest] = field(factory=list)
    responses: Dict[Tuple[str, str, FrozenSet[Tuple[str, str]]], Tuple[int, Union[str, bytes]]] = field(factory=dict)

    def reply(
        self,
        method: str,
        path_suffix: str,
        status: int = 200,
        body: Union[Json, str, bytes, None] = None,
        query: Optional[Dict[str, str]] = None,
    ) -> None:
        # str and bytes are sent as given
        text = body if isinstance(body, (str, bytes)) else ("" if body is None else json.dumps(body))
        self.responses[(method, path_suffix, frozenset((query or {}).items()))] = (status, text)

    def requests_for(self, method: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.method == method]

    async def handle(self, request: Request) -> Response:
        text = await request.text()
        self.requests.append(
            RecordedRequest(
                request.method,
                request.path,
                dict(request.query),
                dict(request.headers),
                json.loads(text) if text else None,
            )
        )
        matches = [
            ((len(suffix), len(query)), reply)
            for (method, suffix, query), reply in self.responses.items()
            if method == request.method
            and request.path.endswith(suffix)
            and all(request.query.get(k) == v for k, v in query)
        ]
        if not matches:
            error = {"error": {"code": "ResourceNotFound", "message": f"{request.path} not found"}}
            return Response(status=404, text=json.dumps(error), content_type="application/json")
        _, (status, body) = max(matches, key=lambda m: m[0])
        if isinstance(body, bytes):
            return Response(status=status, body=body, content_type="application/json", charset="utf-8")
        return Response(status=status, text=body, content_type="application/json")


@fixture
async def control_plane() -> AsyncIterator[FakeControlPlane]:
    fake = FakeControlPlane()
    app = Application()
    app.add_routes([route(METH_ANY, "/{tail:.+}", fake.handle)])
    server = TestServer(app)
    await server.start_server()
    fake.url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@fixture
def config(control_plane: FakeControlPlane) -> AppServiceConfig:
    return AppServiceConfig(
        auth_type=AuthType.none,
        private=PrivateSettings(base_url=control_plane.url, subscription_id="sub-1", resource_group="rg-1"),
        user_assigned_identity_resource_id="/subscriptions/sub-1/resourcegroups/rg-1/providers/"
        "Microsoft.ManagedIdentity/userAssignedIdentities/shop-identity",
    )


@fixture
async def client(config: AppServiceConfig) -> AsyncIterator[ArmClient]:
    arm_client = ArmClient(config.base_url, config.api_version, AnonymousProvider())
    yield arm_client
    await arm_client.close()


def create_certificate(
    common_name: str = "fix-appservice-client",
    valid_from: Optional[datetime] = None,
    valid_until: Optional[datetime] = None,
) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from or now - timedelta(days=1))
        .not_valid_after(valid_until or now + timedelta(days=30))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName("localhost")]), critical=False)
        .sign(key, hashes.SHA256())
    )
    return cert, key


def write_certificate(
    directory: Path, name: str, cert: x509.Certificate, key: Optional[rsa.RSAPrivateKey], key_in_same_file: bool = False
) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    cert_bytes = cert.public_bytes(serialization.Encoding.PEM)
    key_bytes = (
        key.private_bytes(
            serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
        )
        if key is not None
        else b""
    )
    cert_file = directory / f"{name}.pem"
    if key_in_same_file:
        cert_file.write_bytes(cert_bytes + key_bytes)
    else:
        cert_file.write_bytes(cert_bytes)
        if key is not None:
            (directory / f"{name}.key").write_bytes(key_bytes)
    return cert_file

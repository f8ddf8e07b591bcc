"""Shared fixtures for the project hosting tests"""

import base64
from io import BytesIO
from unittest.mock import Mock

import pytest
from PIL import Image
from starlette.testclient import TestClient

from managers.asset_manager import AssetManager
from managers.hosting_manager import HostingManager, LocalHostingProvider
from managers.identity_manager import IdentityManager
from managers.kv_store import KeyValueStoreFactory
from managers.project_manager import ProjectManager
from managers.store_service import ProjectStoreService
from store_client import ProjectStoreClient
from tools.store_routes import build_store_app

HOSTING_DOMAIN = "sites.localhost"
OWNER = "alice"


def make_image_bytes(fmt: str = "PNG", size=(8, 6), color=(200, 40, 40)) -> bytes:
    output = BytesIO()
    Image.new("RGB", size, color).save(output, format=fmt)
    return output.getvalue()


def to_data_url(blob: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(blob).decode('ascii')}"


def fake_response(content: bytes = b"", content_type: str = "image/png", status_code: int = 200):
    """Mimic the parts of requests.Response the asset fetcher uses"""
    response = Mock()
    response.content = content
    response.status_code = status_code
    response.headers = {"Content-Type": content_type}
    response.raise_for_status = Mock()
    return response


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


@pytest.fixture
def kv_factory(tmp_path):
    return KeyValueStoreFactory(tmp_path / "kv")


@pytest.fixture
def identity_manager(tmp_path):
    return IdentityManager(tmp_path / "tokens.json")


@pytest.fixture
def token(identity_manager):
    return identity_manager.issue_token(OWNER)


@pytest.fixture
def store_service(kv_factory, identity_manager):
    return ProjectStoreService(kv_factory, identity_manager)


@pytest.fixture
def store_http(store_service):
    """In-process HTTP client for the store REST API"""
    with TestClient(build_store_app(store_service)) as client:
        yield client


@pytest.fixture
def provider(tmp_path):
    return LocalHostingProvider(tmp_path / "hosting", OWNER, HOSTING_DOMAIN)


@pytest.fixture
def hosting_manager(kv_factory, provider):
    return HostingManager(kv_factory.for_owner(OWNER), provider)


@pytest.fixture
def asset_manager(provider):
    return AssetManager(provider, HOSTING_DOMAIN)


@pytest.fixture
def project_manager(store_http, token, hosting_manager, asset_manager):
    store_client = ProjectStoreClient("http://testserver", token=token, session=store_http)
    return ProjectManager(store_client, hosting_manager, asset_manager, owner_id=OWNER)

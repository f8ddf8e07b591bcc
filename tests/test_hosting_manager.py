"""Tests for hosting namespaces, the local provider and path safety"""

import json
import re
import threading
from unittest.mock import MagicMock

import pytest

from errors import ProvisioningFailed
from managers.hosting_manager import (
    HOSTING_CONFIG_KEY,
    HostingManager,
    LocalHostingProvider,
    create_hosting_slug,
    is_hosted_url,
    is_within,
)
from models.project import HostingNamespace


class TestHostingHelpers:
    """Tests for slug generation and the durable URL predicate"""

    def test_slug_format(self):
        slug = create_hosting_slug()
        assert re.match(r"^projects-[0-9a-z]+-[0-9a-z]{6}$", slug)
        assert len(slug) <= 63

    def test_slugs_unique(self):
        assert len({create_hosting_slug() for _ in range(50)}) == 50

    def test_is_hosted_url(self):
        assert is_hosted_url("https://projects-abc.sites.localhost/projects/p1/source.png", "sites.localhost")
        assert is_hosted_url("http://h.SITES.localhost/x.png", "sites.localhost")

    def test_is_hosted_url_rejects_other_references(self):
        assert not is_hosted_url("data:image/png;base64,AAAA", "sites.localhost")
        assert not is_hosted_url("https://cdn.example.com/plan.png", "sites.localhost")
        # Bare domain without a namespace label
        assert not is_hosted_url("https://sites.localhost/plan.png", "sites.localhost")
        # Lookalike host
        assert not is_hosted_url("https://evilsites.localhost/plan.png", "sites.localhost")
        assert not is_hosted_url("ftp://h.sites.localhost/plan.png", "sites.localhost")
        assert not is_hosted_url("", "sites.localhost")
        assert not is_hosted_url(None, "sites.localhost")

    def test_is_within_nonexistent_child(self, tmp_path):
        assert is_within(tmp_path / "a" / "b.png", tmp_path, child_must_exist=False) is True
        assert is_within(tmp_path / ".." / "b.png", tmp_path, child_must_exist=False) is False


class TestLocalHostingProvider:
    """Tests for the filesystem-backed hosting provider"""

    def test_create_namespace_registers_site(self, provider):
        result = provider.create_namespace("projects-abc-123456", ".")
        assert result == {"handle": "projects-abc-123456"}

        registry = json.loads(provider.registry_path.read_text())
        assert registry["projects-abc-123456"]["owner_id"] == "alice"
        assert provider.owner_root.is_dir()

    def test_create_namespace_collision(self, provider, tmp_path):
        """Test a handle taken by any owner cannot be created again"""
        provider.create_namespace("projects-abc-123456")
        other = LocalHostingProvider(tmp_path / "hosting", "bob", "sites.localhost")
        with pytest.raises(ProvisioningFailed):
            other.create_namespace("projects-abc-123456")

    def test_create_namespace_invalid_handle(self, provider):
        with pytest.raises(ProvisioningFailed):
            provider.create_namespace("Bad_Handle!")
        with pytest.raises(ProvisioningFailed):
            provider.create_namespace("")

    def test_create_namespace_unsafe_root(self, provider):
        with pytest.raises(ProvisioningFailed):
            provider.create_namespace("projects-abc-123456", "../../elsewhere")

    def test_mkdir_is_idempotent(self, provider):
        provider.mkdir("projects/p1")
        provider.mkdir("projects/p1")
        assert (provider.owner_root / "projects" / "p1").is_dir()

    def test_write_blob(self, provider):
        provider.mkdir("projects/p1")
        size = provider.write_blob("projects/p1/source.png", b"\x89PNG data")
        assert size == 9
        assert (provider.owner_root / "projects/p1/source.png").read_bytes() == b"\x89PNG data"
        assert not (provider.owner_root / "projects/p1/source.png.tmp").exists()

    def test_write_blob_rejects_traversal(self, provider):
        with pytest.raises(ValueError):
            provider.write_blob("../bob/projects/p1/source.png", b"x")

    def test_public_url_for(self, provider):
        namespace = HostingNamespace(handle="projects-abc-123456")
        url = provider.public_url_for(namespace, "/projects/p1/source.png")
        assert url == "https://projects-abc-123456.sites.localhost/projects/p1/source.png"

    def test_invalid_owner(self, tmp_path):
        with pytest.raises(ValueError):
            LocalHostingProvider(tmp_path, "../x", "sites.localhost")


class TestHostingManager:
    """Tests for lazy namespace provisioning"""

    def test_creates_and_caches_namespace(self, hosting_manager):
        namespace = hosting_manager.get_or_create_namespace()
        assert namespace is not None
        assert namespace.handle.startswith("projects-")
        assert hosting_manager.kv_store.get(HOSTING_CONFIG_KEY) == {"handle": namespace.handle}

    def test_second_call_does_not_provision(self, kv_factory, provider):
        """Test calling twice issues exactly one provisioning call"""
        spy = MagicMock(wraps=provider)
        manager = HostingManager(kv_factory.for_owner("alice"), spy)

        first = manager.get_or_create_namespace()
        second = manager.get_or_create_namespace()

        assert first == second
        assert spy.create_namespace.call_count == 1

    def test_concurrent_first_use_provisions_once(self, kv_factory, provider):
        """Test simultaneous first calls for one owner share a single namespace"""
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        results_lock = threading.Lock()

        def first_use():
            manager = HostingManager(kv_factory.for_owner("alice"), provider)
            barrier.wait()
            namespace = manager.get_or_create_namespace()
            with results_lock:
                results.append(namespace)

        threads = [threading.Thread(target=first_use) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(results) == workers
        assert results[0] is not None
        assert all(namespace == results[0] for namespace in results)
        registry = json.loads(provider.registry_path.read_text())
        assert list(registry) == [results[0].handle]

    def test_uses_existing_cached_config(self, kv_factory):
        """Test a cached handle is returned with no provider call"""
        kv_store = kv_factory.for_owner("alice")
        kv_store.set(HOSTING_CONFIG_KEY, {"handle": "projects-cached-aaaaaa"})
        provider = MagicMock()

        namespace = HostingManager(kv_store, provider).get_or_create_namespace()

        assert namespace == HostingNamespace(handle="projects-cached-aaaaaa")
        provider.create_namespace.assert_not_called()

    def test_invalid_cached_config_reprovisions(self, kv_factory, provider):
        kv_store = kv_factory.for_owner("alice")
        kv_store.set(HOSTING_CONFIG_KEY, {"handle": ""})

        namespace = HostingManager(kv_store, provider).get_or_create_namespace()

        assert namespace is not None
        assert namespace.handle != ""

    def test_provider_failure_returns_none(self, kv_factory):
        """Test provisioning failures surface as None and nothing is cached"""
        kv_store = kv_factory.for_owner("alice")
        provider = MagicMock()
        provider.create_namespace.side_effect = ProvisioningFailed("handle taken")

        assert HostingManager(kv_store, provider).get_or_create_namespace() is None
        assert kv_store.get(HOSTING_CONFIG_KEY) is None

    def test_unreadable_cache_returns_none(self, kv_factory):
        kv_store = kv_factory.for_owner("alice")
        kv_store.root_dir.mkdir(parents=True)
        kv_store.path.write_text("{broken")
        provider = MagicMock()

        assert HostingManager(kv_store, provider).get_or_create_namespace() is None
        provider.create_namespace.assert_not_called()

"""Unit tests for depbump.core.registry module."""

from __future__ import annotations

from typing import List

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from depbump.utils.http import HTTPClient
from depbump.exceptions import RegistryError
from depbump.core.registry import NpmRegistry, package_url

PACKUMENT = {
    "name": "express",
    "dist-tags": {"latest": "4.19.2", "next": "5.0.0-beta.3"},
    "versions": {
        "4.18.0": {"version": "4.18.0"},
        "4.19.1": {"version": "4.19.1", "deprecated": "security issue, use 4.19.2"},
        "4.19.2": {"version": "4.19.2"},
        "5.0.0-beta.3": {"version": "5.0.0-beta.3"},
    },
}


def registry_for(handler, url: str = "https://registry.test/") -> NpmRegistry:
    client = HTTPClient(transport=httpx.MockTransport(handler), max_retries=0)
    return NpmRegistry(client, url)


@pytest.mark.unit
class TestPackageUrl:
    @pytest.mark.parametrize(
        "registry,name,expected",
        [
            ("https://registry.npmjs.org/", "@types/node", "https://registry.npmjs.org/@types%2fnode"),
            ("https://registry.npmjs.org", "express", "https://registry.npmjs.org/express"),
            ("https://npm.corp/api/npm/", "@corp/ui-kit", "https://npm.corp/api/npm/@corp%2fui-kit"),
        ],
    )
    def test_urls(self, registry: str, name: str, expected: str) -> None:
        assert package_url(registry, name) == expected


@pytest.mark.unit
class TestNpmRegistry:
    """Tests for NpmRegistry.fetch_version_set."""

    def test_identity_strips_trailing_slash(self) -> None:
        assert NpmRegistry(HTTPClient(), "https://registry.test/").identity == "https://registry.test"

    @pytest.mark.asyncio
    async def test_fetch_builds_version_set(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PACKUMENT)

        registry = registry_for(handler)
        async with registry.http_client:
            versions = await registry.fetch_version_set("express")

        assert str(seen[0].url) == "https://registry.test/express"
        assert seen[0].headers["Accept"] == "application/json"
        assert versions.name == "express"
        assert len(versions) == 4
        assert versions.version_at_tag("next") == "5.0.0-beta.3"
        assert versions.is_deprecated("4.19.1")
        assert not versions.is_deprecated("4.19.2")

    @pytest.mark.asyncio
    async def test_scoped_package_path(self) -> None:
        seen: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"name": "@types/node", "versions": {}})

        registry = registry_for(handler)
        async with registry.http_client:
            await registry.fetch_version_set("@types/node")

        assert seen[0].lower() == "/@types%2fnode"

    @pytest.mark.asyncio
    async def test_not_found_names_package(self) -> None:
        registry = registry_for(lambda request: httpx.Response(404))

        async with registry.http_client:
            with pytest.raises(RegistryError) as exc_info:
                await registry.fetch_version_set("no-such-package")

        assert exc_info.value.package_name == "no-such-package"
        assert exc_info.value.status_code == 404
        assert "package=no-such-package" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_failure_wrapped(self) -> None:
        registry = registry_for(lambda request: httpx.Response(503))

        with patch("depbump.utils.http.asyncio.sleep", new_callable=AsyncMock):
            async with registry.http_client:
                with pytest.raises(RegistryError, match="Failed to fetch express") as exc_info:
                    await registry.fetch_version_set("express")

        assert exc_info.value.package_name == "express"
        assert exc_info.value.__cause__ is not None

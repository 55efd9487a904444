"""npm registry client for depbump.

Fetches a package's packument (``GET {registry}/{name}``) and reduces it
to a :class:`~depbump.models.version_set.VersionSet`.

Typical usage::

    from depbump.utils.http import HTTPClient
    from depbump.core.registry import NpmRegistry

    async with HTTPClient() as client:
        registry = NpmRegistry(client)
        versions = await registry.fetch_version_set("@types/node")
        print(versions.version_at_tag("latest"))
"""

from __future__ import annotations

from urllib.parse import quote

from depbump.utils.http import HTTPClient
from depbump.utils.logger import get_logger
from depbump.models.version_set import VersionSet
from depbump.exceptions import NetworkError, RegistryError
from depbump.constants import DEFAULT_REGISTRY, PACKUMENT_ACCEPT

logger = get_logger("registry")


def package_url(registry_url: str, name: str) -> str:
    """Return the packument URL for *name*.

    Scoped names keep their ``@`` but have the slash escaped, which is
    the form every npm-compatible registry accepts.

    Example:
        >>> package_url("https://registry.npmjs.org/", "@types/node")
        'https://registry.npmjs.org/@types%2fnode'
    """
    base = registry_url.rstrip("/")
    if name.startswith("@"):
        scope, _, bare = name[1:].partition("/")
        path = "@%s%%2f%s" % (quote(scope, safe=""), quote(bare, safe=""))
    else:
        path = quote(name, safe="")
    return f"{base}/{path}"


class NpmRegistry:
    """Registry collaborator backed by :class:`HTTPClient`.

    Args:
        http_client: Shared HTTP client (owns the connection pool).
        registry_url: Registry base URL.
    """

    def __init__(self, http_client: HTTPClient, registry_url: str = DEFAULT_REGISTRY) -> None:
        self.http_client = http_client
        self.registry_url = registry_url.rstrip("/")

    @property
    def identity(self) -> str:
        """Cache identity of this registry."""
        return self.registry_url

    async def fetch_version_set(self, name: str) -> VersionSet:
        """Fetch the published versions of *name*.

        Raises:
            RegistryError: The package does not exist or the registry
                could not be reached.
        """
        url = package_url(self.registry_url, name)
        logger.debug("Fetching %s", url)

        try:
            packument = await self.http_client.get_json(
                url, headers={"Accept": PACKUMENT_ACCEPT}
            )
        except RegistryError as exc:
            exc.package_name = name
            exc.details["package"] = name
            raise
        except NetworkError as exc:
            raise RegistryError(
                f"Failed to fetch {name}: {exc.message}",
                package_name=name,
                url=exc.url,
                status_code=exc.status_code,
            ) from exc

        version_set = VersionSet.from_packument(name, packument)
        logger.debug("%s: %d versions, %d dist-tags", name, len(version_set), len(version_set.dist_tags))
        return version_set

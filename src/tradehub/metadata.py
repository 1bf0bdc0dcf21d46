"""Token metadata resolution.

Token URIs point at JSON documents describing the energy block (name,
description, image, attributes). HTTP(S) URIs are fetched directly and
ipfs:// URIs through a gateway.
"""

from typing import Any

import httpx

from .config import DEFAULT_IPFS_GATEWAY
from .errors import MetadataError


def resolve_uri(uri: str, ipfs_gateway: str = DEFAULT_IPFS_GATEWAY) -> str:
    """Turn a token URI into a fetchable HTTP(S) URL."""
    if uri.startswith("ipfs://"):
        path = uri[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return ipfs_gateway.rstrip("/") + "/" + path
    if uri.startswith(("http://", "https://")):
        return uri
    raise MetadataError(f"Unsupported token URI: {uri!r}")


def fetch_token_metadata(
    uri: str,
    timeout: float = 15.0,
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    """Fetch and decode the JSON metadata document behind a token URI.

    Args:
        uri: The token URI as stored on the ledger
        timeout: Request timeout in seconds
        ipfs_gateway: Gateway prefix for ipfs:// URIs
        client: Optional pre-configured client (used by tests)

    Returns:
        The decoded JSON object
    """
    url = resolve_uri(uri, ipfs_gateway)

    try:
        if client is None:
            with httpx.Client(timeout=timeout, follow_redirects=True) as owned:
                response = owned.get(url)
        else:
            response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise MetadataError(f"HTTP error fetching {url}: {e.response.status_code}")
    except httpx.HTTPError as e:
        raise MetadataError(f"Network error fetching {url}: {e}")

    try:
        data = response.json()
    except ValueError:
        raise MetadataError(f"Metadata at {url} is not valid JSON")

    if not isinstance(data, dict):
        raise MetadataError(f"Metadata at {url} must be a JSON object")
    return data

"""Link extraction from post records."""

from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from .logging_setup import get_logger

log = get_logger(__name__)

LINK_FEATURE_TYPE = "app.bsky.richtext.facet#link"
EXTERNAL_EMBED_TYPE = "app.bsky.embed.external"


def extract_links(record: Dict[str, Any]) -> List[str]:
    """Extract all URLs from a post record.

    Checks both facets (inline links in text) and the external embed
    (link preview card). Malformed entries are skipped.
    """
    links: List[str] = []

    facets = record.get("facets")
    if isinstance(facets, list):
        for facet in facets:
            if not isinstance(facet, dict):
                continue
            features = facet.get("features")
            if not isinstance(features, list):
                continue
            for feature in features:
                if not isinstance(feature, dict):
                    continue
                if feature.get("$type") != LINK_FEATURE_TYPE:
                    continue
                uri = feature.get("uri")
                if isinstance(uri, str) and uri:
                    links.append(uri)

    embed = record.get("embed")
    if isinstance(embed, dict) and embed.get("$type") == EXTERNAL_EMBED_TYPE:
        external = embed.get("external")
        if isinstance(external, dict):
            uri = external.get("uri")
            if isinstance(uri, str) and uri:
                links.append(uri)

    return links


def domain_from_url(url: str) -> Optional[str]:
    """Return the lowercased hostname of ``url``.

    https://blog.example.com/post -> blog.example.com. Subdomains are kept
    as-is: blog.example.com is not example.com.
    """
    try:
        hostname = urlsplit(url).hostname
    except ValueError as e:
        log.debug("url_parse_failed", url=url, error=str(e))
        return None
    if not hostname:
        log.debug("url_without_host", url=url)
        return None
    return hostname.lower()

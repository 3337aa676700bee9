"""IndieWeb post classification.

A post belongs in the IndieWeb feed when it links to its author's own
site. Rules, evaluated per link in order, first match wins:

1. own domain: the link's domain is the author's handle. Handles under the
   shared bsky.social host never self-match, otherwise every free account
   could claim its subdomain.
2. mapped domain: the link's domain is mapped to the handle in the CSV
   mapping table. This is an explicit opt-in and ignores the suffix.
"""

from typing import Callable, Iterable, Sequence, Tuple

from .links import domain_from_url
from .mappings import MappingRegistry

SHARED_HOSTING_SUFFIX = ".bsky.social"

MatchPredicate = Callable[[str, str, Sequence[str]], bool]


def matches_own_domain(domain: str, handle: str, mapped_domains: Sequence[str]) -> bool:
    return not handle.endswith(SHARED_HOSTING_SUFFIX) and domain == handle


def matches_mapped_domain(domain: str, handle: str, mapped_domains: Sequence[str]) -> bool:
    return domain in mapped_domains


MATCH_PREDICATES: Tuple[MatchPredicate, ...] = (
    matches_own_domain,
    matches_mapped_domain,
)


def classify(handle: str, links: Sequence[str], mapped_domains: Iterable[str] = ()) -> bool:
    """True when at least one link points at the author's own domain."""
    if not links:
        return False

    handle = handle.lower()
    mapped = tuple(d.lower() for d in mapped_domains)

    for link in links:
        domain = domain_from_url(link)
        if not domain:
            continue
        if any(predicate(domain, handle, mapped) for predicate in MATCH_PREDICATES):
            return True
    return False


class PostClassifier:
    """Classifier bound to a mapping registry."""

    def __init__(self, registry: MappingRegistry):
        self.registry = registry

    def classify(self, handle: str, links: Sequence[str]) -> bool:
        if not links:
            return False
        return classify(handle, links, self.registry.lookup(handle))

"""Hypermedia link extraction from decoded JSON resources."""

from typing import Any, Iterator

# Redfish/Swordfish use @odata.id, legacy HPE REST payloads use href
LINK_KEYS = frozenset(("@odata.id", "href"))


def extract_links(document: Any) -> list[str]:
    """Collect every link in a decoded JSON document.

    Walks objects and arrays depth-first. Object members are visited in
    encounter order and array elements in index order. Every string value
    stored under a link key is returned, duplicates included; deduplication
    is the crawler's job.

    Example:
        {"Oem": {"Hp": {"Class": 17}}, "links": {"self": {"href": "/x/16/"}}}
        -> ["/x/16/"]

    Args:
        document: Any decoded JSON value. Scalars yield no links.

    Returns:
        Link strings in depth-first encounter order.
    """
    return list(_walk(document))


def _walk(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        for key, item in value.items():
            if key in LINK_KEYS and isinstance(item, str):
                yield item
            else:
                yield from _walk(item)
    elif isinstance(value, list):
        for item in value:
            yield from _walk(item)

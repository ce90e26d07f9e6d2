"""Cache key derivation."""

import hashlib

from models.search import Query, SourceId


def make_cache_key(source: SourceId, query: Query) -> str:
    """
    Build the cache key for one source's response to a query.

    The key covers everything that changes the upstream response: source,
    normalized query text, filters and paging. The source prefix is kept in
    clear text so entries can be grouped per source.
    """
    material = "|".join(
        [
            source.value,
            query.normalized_text,
            query.filters.cache_fingerprint(),
            str(query.page),
            str(query.page_size),
        ]
    )
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{source.value}:{digest}"


def source_of_key(key: str) -> str:
    return key.split(":", 1)[0]

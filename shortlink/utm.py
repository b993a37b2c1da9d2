"""UTM parameter bookkeeping for stored URLs.

Stored URLs never carry non-empty UTM query parameters. They are pulled out of the
submitted URL at creation time and kept as a separate mapping, then put back
on every served redirect. This lets one UTM configuration apply uniformly to
all visitors without rewriting the persisted URL.

Example:
    >>> extract_utm_params("https://x.com/?utm_source=tw&id=1")
    ('https://x.com/?id=1', {'source': 'tw'})
    >>> append_utm_params("https://x.com/?id=1", {"source": "tw"})
    'https://x.com/?id=1&utm_source=tw'
"""

from collections.abc import Mapping
from urllib.parse import quote, unquote_plus, urlencode, urlsplit, urlunsplit

__all__ = ["UTM_FIELDS", "append_utm_params", "extract_utm_params", "merge_utm_params"]

UTM_PREFIX = "utm_"
UTM_FIELDS: tuple[str, ...] = ("source", "medium", "campaign", "term", "content")
UTM_PARAM_TO_FIELD = {f"{UTM_PREFIX}{name}": name for name in UTM_FIELDS}


def _split_query(query: str) -> list[str]:
    return query.split("&") if query else []


def _segment_key(segment: str) -> str:
    return unquote_plus(segment.partition("=")[0])


def extract_utm_params(url: str) -> tuple[str, dict[str, str]]:
    """Split a URL into its UTM-free form and the UTM fields it carried.

    Only the five known ``utm_*`` parameters with a non-empty value are
    extracted. Every other query segment is kept byte for byte, in order.
    The first occurrence of a repeated UTM parameter wins. A URL without
    extractable UTM parameters is returned as is.
    """
    parts = urlsplit(url)
    extracted: dict[str, str] = {}
    kept: list[str] = []
    for segment in _split_query(parts.query):
        field = UTM_PARAM_TO_FIELD.get(_segment_key(segment))
        value = segment.partition("=")[2]
        if field is None or not value:
            kept.append(segment)
        elif field not in extracted:
            extracted[field] = unquote_plus(value)

    if not extracted:
        return url, {}

    return urlunsplit(parts._replace(query="&".join(kept))), extracted


def merge_utm_params(
    extracted: Mapping[str, str] | None,
    explicit: Mapping[str, str] | None,
) -> dict[str, str] | None:
    """Shallow merge where caller-supplied values win. Empty results become None."""
    merged = {**(extracted or {}), **(explicit or {})}
    return merged or None


def append_utm_params(url: str, utm_params: Mapping[str, str] | None) -> str:
    """Return ``url`` with the stored UTM fields set as query parameters.

    An existing parameter of the same name is replaced rather than
    duplicated; all other query segments are left untouched. Unknown fields
    and empty values are ignored.
    """
    if not utm_params:
        return url

    additions = [
        (f"{UTM_PREFIX}{field}", utm_params[field])
        for field in UTM_FIELDS
        if utm_params.get(field)
    ]
    if not additions:
        return url

    parts = urlsplit(url)
    replaced = {name for name, _ in additions}
    segments = [segment for segment in _split_query(parts.query) if _segment_key(segment) not in replaced]
    segments.append(urlencode(additions, quote_via=quote))
    return urlunsplit(parts._replace(query="&".join(segments)))

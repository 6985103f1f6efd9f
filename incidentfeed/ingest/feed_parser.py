"""
RSS → RawFeedItem
-----------------

The upstream feed sometimes arrives with a BOM or a few junk bytes in front of
the XML declaration (relays like to prepend things). Everything before the
first ``<`` is dropped, then xmltodict does the rest.

xmltodict quirks handled here:

• a single ``<item>`` comes back as a dict, several as a list
• ``<guid isPermaLink="false">…</guid>`` comes back as
  ``{"@isPermaLink": "false", "#text": "…"}``
"""
from __future__ import annotations
import logging
from typing import Any, List, Optional
from xml.parsers.expat import ExpatError

import xmltodict

from incidentfeed.errors import MalformedFeed
from incidentfeed.ingest.records import RawFeedItem

_log = logging.getLogger(__name__)

BOM = b"\xef\xbb\xbf"


def clean(content: bytes) -> bytes:
    "Strip a UTF‑8 BOM and anything preceding the first '<'."
    if content.startswith(BOM):
        content = content[len(BOM):]
    start = content.find(b"<")
    if start < 0:
        raise MalformedFeed("feed content does not start with '<' after cleanup")
    return content[start:]


def _text(node: Any) -> Optional[str]:
    "Reduce an xmltodict node to its text; empty → None."
    if node is None:
        return None
    if isinstance(node, dict):
        node = node.get("#text")
        if node is None:
            return None
    text = str(node).strip()
    return text or None


def _as_list(node: Any) -> List[Any]:
    if node is None:
        return []
    return node if isinstance(node, list) else [node]


def parse_feed(content: bytes) -> List[RawFeedItem]:
    """
    Parameters
    ----------
    content : raw response body

    Returns
    -------
    RawFeedItem list in document order (no dedup, no sorting).

    Raises
    ------
    MalformedFeed when the bytes are not an RSS channel document.
    """
    try:
        doc = xmltodict.parse(clean(content))
    except ExpatError as exc:
        raise MalformedFeed(f"feed is not well-formed XML: {exc}") from exc

    rss = doc.get("rss")
    channel = rss.get("channel") if isinstance(rss, dict) else None
    if not isinstance(channel, dict):
        raise MalformedFeed("document has no rss/channel element")

    items = []
    for it in _as_list(channel.get("item")):
        if not isinstance(it, dict):
            continue
        items.append(RawFeedItem(
            title=_text(it.get("title")),
            link=_text(it.get("link")),
            guid=_text(it.get("guid")),
            pub_date=_text(it.get("pubDate")),
            description=_text(it.get("description")),
        ))
    _log.debug("Parsed %d feed items", len(items))
    return items

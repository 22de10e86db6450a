"""Namespace-preserving decoder for podcast feeds.

Turns feed XML into a generic attribute tree: one RawAttributes mapping for
the channel and one per item. The structural conversion is namespace
agnostic (element names are reduced to their local name), which would merge
e.g. ``<category>`` and ``<itunes:category>`` into a single key. To keep the
iTunes vocabulary distinct, the ``itunes:`` prefix is masked with a
placeholder before parsing and restored afterwards, so the decoded tree
carries ``itunes:category`` as its own key.

Every other element prefix is dropped before parsing. Feeds often use
``media:``, ``googleplay:`` or ``podcast:`` elements without declaring the
namespace, which ElementTree would reject as a whole document.
"""

import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from typing import Dict, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

FeedValue = Union[str, List["FeedValue"], Dict[str, "FeedValue"]]

ITUNES_PREFIX = "itunes:"
NAMESPACE_PLACEHOLDER = "__placeholder__"
MASKED_PREFIX = f"itunes{NAMESPACE_PLACEHOLDER}"

# Prefix of any other element name, e.g. <media:content> or </podcast:guid>
ELEMENT_PREFIX_RE = re.compile(r"<(/?)[A-Za-z_][\w.-]*:(?=[A-Za-z_])")

TEXT_KEY = "#text"
ATTRIBUTE_PREFIX = "@"


def value_to_text(value) -> Optional[str]:
    """Resolve a feed value to its text content.

    Feeds are inconsistent about how text is encoded: a bare string and a
    node carrying a ``#text`` field (because the element also has
    attributes) mean the same thing. For repeated elements the first entry
    with text wins. Empty text counts as absent.
    """
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, Mapping):
        return value_to_text(value.get(TEXT_KEY))
    if isinstance(value, list):
        for entry in value:
            text = value_to_text(entry)
            if text is not None:
                return text
    return None


def value_to_url(value) -> Optional[str]:
    """Resolve a feed value to a URL.

    Handles ``<enclosure url="..."/>``, ``<itunes:image href="..."/>``,
    ``<image><url>...</url></image>`` and plain text nodes.
    """
    if isinstance(value, str):
        return value_to_text(value)
    if isinstance(value, Mapping):
        for key in ("@href", "@url"):
            url = value_to_text(value.get(key))
            if url:
                return url
        if "url" in value:
            return value_to_url(value["url"])
        return value_to_text(value.get(TEXT_KEY))
    if isinstance(value, list):
        for entry in value:
            url = value_to_url(entry)
            if url:
                return url
    return None


def value_to_text_list(value) -> List[str]:
    """Resolve a single or repeated feed value to a list of texts.

    Entries without text content fall back to their ``text`` attribute,
    which is how ``<itunes:category text="News"/>`` carries its value.
    """
    if value is None:
        return []
    entries = value if isinstance(value, list) else [value]
    texts = []
    for entry in entries:
        text = value_to_text(entry)
        if text is None and isinstance(entry, Mapping):
            text = value_to_text(entry.get(f"{ATTRIBUTE_PREFIX}text"))
        if text is not None:
            texts.append(text)
    return texts


class RawAttributes(Mapping):
    """Read-only ordered mapping of decoded feed attributes.

    One instance describes a channel or a single item. The typed accessors
    never raise on a shape mismatch; they return None (or an empty list).
    """

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping] = None):
        self._data: Dict[str, FeedValue] = dict(data or {})

    def __getitem__(self, key: str) -> FeedValue:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"RawAttributes({self._data!r})"

    def get_text(self, key: str) -> Optional[str]:
        return value_to_text(self._data.get(key))

    def get_url(self, key: str) -> Optional[str]:
        return value_to_url(self._data.get(key))

    def get_text_list(self, key: str) -> List[str]:
        return value_to_text_list(self._data.get(key))


def _local_name(tag: str) -> str:
    """Strip an ElementTree ``{uri}`` namespace qualifier."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def element_to_value(element: ET.Element) -> FeedValue:
    """Convert an element into a generic value tree.

    Leaf elements without attributes become strings. Otherwise the element
    becomes a mapping: attributes as ``@name``, children by local name
    (repeated names collapse into a list) and any text as ``#text``.
    """
    node: Dict[str, FeedValue] = {}

    for name, value in element.attrib.items():
        node[ATTRIBUTE_PREFIX + _local_name(name)] = value

    for child in element:
        key = _local_name(child.tag)
        value = element_to_value(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]

    text = (element.text or "").strip()
    if not node:
        return text
    if text:
        node[TEXT_KEY] = text
    return node


def _restore_namespace(value: FeedValue) -> FeedValue:
    """Rewrite every masked itunes prefix back to ``itunes:``, at any depth."""
    if isinstance(value, str):
        return value.replace(MASKED_PREFIX, ITUNES_PREFIX)
    if isinstance(value, list):
        return [_restore_namespace(entry) for entry in value]
    if isinstance(value, dict):
        return {
            key.replace(MASKED_PREFIX, ITUNES_PREFIX): _restore_namespace(entry)
            for key, entry in value.items()
        }
    return value


def decode(xml_text: str) -> Optional[Tuple[RawAttributes, List[RawAttributes]]]:
    """Decode feed XML into channel attributes and per-item attributes.

    Args:
        xml_text: The feed document.

    Returns:
        ``(channel, items)``, or None when the document is not well formed,
        has no ``rss/channel`` path, or the channel has no ``item``. Items
        that are not elements with content are skipped.
    """
    masked = xml_text.replace(ITUNES_PREFIX, MASKED_PREFIX)
    masked = ELEMENT_PREFIX_RE.sub(r"<\1", masked)

    try:
        root = ET.fromstring(masked)
    except ET.ParseError as e:
        logger.debug(f"Feed is not well-formed XML: {e}")
        return None

    if _local_name(root.tag) != "rss":
        logger.debug(f"Unexpected feed root element: {root.tag}")
        return None

    tree = element_to_value(root)
    channel = tree.get("channel") if isinstance(tree, dict) else None
    if not isinstance(channel, dict):
        return None

    items = channel.get("item")
    if items is None:
        return None
    if not isinstance(items, list):
        items = [items]

    podcast = RawAttributes(
        {
            key.replace(MASKED_PREFIX, ITUNES_PREFIX): _restore_namespace(value)
            for key, value in channel.items()
            if key != "item"
        }
    )
    episodes = [
        RawAttributes(_restore_namespace(item))
        for item in items
        if isinstance(item, dict)
    ]

    return podcast, episodes

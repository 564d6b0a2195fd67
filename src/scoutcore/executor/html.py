"""
Server-side HTML helpers built on selectolax.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from selectolax.parser import HTMLParser, Node

from scoutcore.protocols import SelectorSpec

_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "svg", "head")
_HIDDEN_SELECTORS = (
    "[hidden]",
    '[aria-hidden="true"]',
    '[style*="display:none"]',
    '[style*="display: none"]',
    '[style*="visibility:hidden"]',
    '[style*="visibility: hidden"]',
    '[style*="opacity:0"]',
    '[style*="opacity: 0"]',
)


def _read(node: Optional[Node], attribute: Optional[str]) -> Optional[str]:
    if node is None:
        return None
    if attribute:
        return node.attributes.get(attribute)
    text = node.text(separator=" ", strip=True)
    return text or None


def select_fields(html: str, rules: Mapping[str, SelectorSpec]) -> Dict[str, Any]:
    """Apply selector rules to an HTML document; fields with no match are omitted."""
    if not html or not rules:
        return {}
    tree = HTMLParser(html)
    fields: Dict[str, Any] = {}
    for name, rule in rules.items():
        if rule.multiple:
            values = [v for v in (_read(n, rule.attribute) for n in tree.css(rule.selector)) if v]
            if values:
                fields[name] = values
        else:
            value = _read(tree.css_first(rule.selector), rule.attribute)
            if value:
                fields[name] = value
    return fields


def visible_text(html: str, max_chars: int = 6000) -> str:
    """Text a reader would see: scripts, styles and hidden elements removed."""
    if not html:
        return ""
    tree = HTMLParser(html)
    tree.strip_tags(list(_INVISIBLE_TAGS))
    for selector in _HIDDEN_SELECTORS:
        for node in tree.css(selector):
            node.decompose()
    root = tree.body or tree.root
    if root is None:
        return ""
    lines = [line.strip() for line in root.text(separator="\n").splitlines()]
    return "\n".join(line for line in lines if line)[:max_chars]

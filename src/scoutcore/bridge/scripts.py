"""
JavaScript builders for the embedded browser.

Each script is self-contained, answers exactly once through the page's
message channel and tags its reply with the ``requestId`` it was given.
"""

from __future__ import annotations

import json
from typing import Mapping

from scoutcore.protocols import SelectorSpec

EXTRACTION_RESULT = "EXTRACTION_RESULT"
EXTRACTION_ERROR = "EXTRACTION_ERROR"
READY_STATE = "READY_STATE"
VISIBLE_TEXT = "VISIBLE_TEXT"

_SEND = """
  function send(message) {
    var channel = window.ReactNativeWebView || window.parent;
    channel.postMessage(JSON.stringify(message), '*');
  }
"""


def _wrap(request_id: str, body: str) -> str:
    rid = json.dumps(request_id)
    return (
        "(function() {"
        + _SEND
        + "  try {\n"
        + body
        + "\n  } catch (e) {\n"
        + f"    send({{type: '{EXTRACTION_ERROR}', requestId: {rid}, error: String(e && e.message || e)}});\n"
        + "  }\n"
        + "})();\ntrue;"
    )


def build_extraction_script(request_id: str, rules: Mapping[str, SelectorSpec]) -> str:
    """Query the DOM for every selector rule and post a field->value record."""
    spec = json.dumps({name: rule.to_dict() for name, rule in rules.items()})
    rid = json.dumps(request_id)
    body = f"""
    var rules = {spec};
    var data = {{}};
    function read(el, attribute) {{
      if (!el) return null;
      if (attribute) return el.getAttribute(attribute);
      return (el.innerText || el.textContent || '').trim();
    }}
    Object.keys(rules).forEach(function(name) {{
      var rule = rules[name];
      if (rule.multiple) {{
        var values = Array.prototype.map.call(document.querySelectorAll(rule.selector), function(el) {{
          return read(el, rule.attribute);
        }}).filter(function(v) {{ return v; }});
        if (values.length) data[name] = values;
      }} else {{
        var value = read(document.querySelector(rule.selector), rule.attribute);
        if (value) data[name] = value;
      }}
    }});
    send({{type: '{EXTRACTION_RESULT}', requestId: {rid}, data: data, url: window.location.href}});"""
    return _wrap(request_id, body)


def build_ready_probe(request_id: str, selector: str) -> str:
    """Report whether ``selector`` currently matches an element."""
    rid = json.dumps(request_id)
    body = f"""
    var ready = document.readyState !== 'loading' && !!document.querySelector({json.dumps(selector)});
    send({{type: '{READY_STATE}', requestId: {rid}, ready: ready}});"""
    return _wrap(request_id, body)


def build_visible_text_script(request_id: str, max_chars: int) -> str:
    """Collect the text of visible elements, skipping zero-size, hidden and transparent nodes."""
    rid = json.dumps(request_id)
    body = f"""
    var skip = {{SCRIPT: 1, STYLE: 1, NOSCRIPT: 1, TEMPLATE: 1, SVG: 1}};
    function visible(el) {{
      var rect = el.getBoundingClientRect();
      if (rect.width === 0 || rect.height === 0) return false;
      var style = window.getComputedStyle(el);
      return style.visibility !== 'hidden' && style.display !== 'none' && parseFloat(style.opacity) !== 0;
    }}
    var parts = [];
    var total = 0;
    var walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
    while (walker.nextNode() && total < {int(max_chars)}) {{
      var node = walker.currentNode;
      var parent = node.parentElement;
      var text = (node.textContent || '').trim();
      if (!text || !parent || skip[parent.tagName] || !visible(parent)) continue;
      parts.push(text);
      total += text.length + 1;
    }}
    send({{type: '{VISIBLE_TEXT}', requestId: {rid}, text: parts.join('\\n').slice(0, {int(max_chars)})}});"""
    return _wrap(request_id, body)

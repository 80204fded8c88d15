"""Canned in-page functions and argument checks for ``evaluate``.

Query helpers are plain JavaScript functions evaluated with the selector as
an argument. Each one returns a defined default when nothing matches, so
callers never see an error for a missing element.
"""

from __future__ import annotations

import json
import re
from typing import Any

TEXT = "function (selector) { var el = document.querySelector(selector); return el ? el.textContent : ''; }"

HTML = (
    "function (selector) {"
    " if (!selector) { return document.documentElement.outerHTML; }"
    " var el = document.querySelector(selector); return el ? el.innerHTML : ''; }"
)

ATTRIBUTE = (
    "function (selector, name) {"
    " var el = document.querySelector(selector);"
    " var v = el ? el.getAttribute(name) : null; return v === null ? '' : v; }"
)

CSS_PROPERTY = (
    "function (selector, prop) {"
    " var el = document.querySelector(selector);"
    " return el ? window.getComputedStyle(el).getPropertyValue(prop) : ''; }"
)

GET_VALUE = "function (selector) { var el = document.querySelector(selector); return el && el.value != null ? String(el.value) : ''; }"

SET_VALUE = (
    "function (selector, value) {"
    " var els = document.querySelectorAll(selector);"
    " for (var i = 0; i < els.length; i++) {"
    " els[i].value = value; els[i].dispatchEvent(new Event('change', {bubbles: true})); }"
    " return els.length ? String(els[0].value) : ''; }"
)

EXISTS = "function (selector) { return document.querySelector(selector) !== null; }"

COUNT = "function (selector) { return document.querySelectorAll(selector).length; }"

VISIBLE = (
    "function (selector) {"
    " var el = document.querySelector(selector); if (!el) { return false; }"
    " var style = window.getComputedStyle(el);"
    " if (style.display === 'none' || style.visibility === 'hidden') { return false; }"
    " var r = el.getBoundingClientRect(); return r.width > 0 && r.height > 0; }"
)

WIDTH = "function (selector) { var el = document.querySelector(selector); return el ? el.offsetWidth : 0; }"

HEIGHT = "function (selector) { var el = document.querySelector(selector); return el ? el.offsetHeight : 0; }"

BOUNDING_BOX = (
    "function (selector) {"
    " var el = document.querySelector(selector); if (!el) { return null; }"
    " var r = el.getBoundingClientRect();"
    " return {top: r.top + window.pageYOffset, left: r.left + window.pageXOffset,"
    " width: r.width, height: r.height}; }"
)

TITLE = "function () { return document.title; }"

URL = "function () { return window.location.href; }"

CLEAR = (
    "function (selector) {"
    " var els = document.querySelectorAll(selector);"
    " for (var i = 0; i < els.length; i++) { els[i].value = ''; } return els.length; }"
)

SELECT = (
    "function (selector, value) {"
    " var el = document.querySelector(selector); if (!el) { return false; }"
    " el.value = value; el.dispatchEvent(new Event('change', {bubbles: true})); return true; }"
)

FOCUS = "function (selector) { var el = document.querySelector(selector); if (el) { el.focus(); } return !!el; }"


# ---------------------------------------------------------------------------
# Argument handling
# ---------------------------------------------------------------------------

_FUNCTION_PARAMS = re.compile(r"^\s*(?:async\s+)?function\b[^(]*\(([^)]*)\)")
_ARROW_PARAMS = re.compile(r"^\s*(?:async\s+)?\(([^)]*)\)\s*=>")
_ARROW_SINGLE = re.compile(r"^\s*(?:async\s+)?([A-Za-z_$][\w$]*)\s*=>")


def declared_arity(fn: str) -> int | None:
    """Count the parameters *fn* declares, or ``None`` if it can't be told.

    Rest parameters make the arity unbounded and also return ``None``.
    """
    match = _FUNCTION_PARAMS.match(fn) or _ARROW_PARAMS.match(fn)
    if match:
        params = [p.strip() for p in match.group(1).split(",") if p.strip()]
        if any(p.startswith("...") for p in params):
            return None
        return len(params)
    if _ARROW_SINGLE.match(fn):
        return 1
    return None


def check_arguments(fn: str, args: tuple[Any, ...]) -> list[Any]:
    """Validate an ``evaluate`` call before it is queued.

    Returns:
        The arguments as a list, ready for the wire.

    Raises:
        TypeError: If *fn* is not source text, more arguments are given
            than it declares, or an argument is not JSON-serializable.
    """
    if not isinstance(fn, str) or not fn.strip():
        raise TypeError("evaluate() needs the function's source text")
    arity = declared_arity(fn)
    if arity is not None and len(args) > arity:
        raise TypeError(f"function declares {arity} parameter(s) but {len(args)} argument(s) were given")
    for position, arg in enumerate(args):
        try:
            json.dumps(arg)
        except (TypeError, ValueError) as exc:
            raise TypeError(f"argument {position} is not JSON-serializable: {exc}") from exc
    return list(args)

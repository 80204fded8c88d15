"""Cookie normalisation.

Callers may hand over a single cookie, a list of cookies, or the JSON text of
either; the driver only ever sees a list.
"""

from __future__ import annotations

import json
from typing import Any, Union

from pydantic import ValidationError

from steed.core.models import Cookie

CookieInput = Union[Cookie, dict[str, Any], list[Union[Cookie, dict[str, Any]]], str]


def normalize_cookies(cookies: CookieInput) -> list[Cookie]:
    """Return *cookies* as a list of validated ``Cookie`` models.

    Raises:
        ValueError: If the input is not one of the accepted shapes.
    """
    if isinstance(cookies, str):
        try:
            cookies = json.loads(cookies)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Cookie string is not valid JSON: {exc}") from exc
    if isinstance(cookies, (Cookie, dict)):
        cookies = [cookies]
    if not isinstance(cookies, list):
        raise ValueError(f"Unsupported cookie value: {type(cookies).__name__}")

    result: list[Cookie] = []
    for item in cookies:
        if isinstance(item, Cookie):
            result.append(item)
            continue
        try:
            result.append(Cookie.model_validate(item))
        except ValidationError as exc:
            raise ValueError(f"Invalid cookie {item!r}: {exc}") from exc
    return result


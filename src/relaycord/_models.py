"""
Response body variants returned by the REST client.

A successful response is one of:
- JsonBody: the body parsed as JSON.
- EmptyBody: no body (204 No Content, or an empty 2xx body).
- RawBody: a body that is not JSON (binary or plain text), kept unparsed.

Callers dispatch on the variant instead of guessing from the value:

    >>> match client.get("users/@me"):
    ...     case JsonBody(value=user):
    ...         print(user["id"])
    ...     case EmptyBody():
    ...         print("nothing returned")
    ...     case RawBody(content=data):
    ...         print(f"{len(data)} raw bytes")
"""

from dataclasses import dataclass, field
from typing import Any

import requests


@dataclass(frozen=True)
class JsonBody:
    """A successful response whose body parsed as JSON."""

    value: Any


@dataclass(frozen=True)
class EmptyBody:
    """A successful response without a body."""

    status_code: int = 204


@dataclass(frozen=True)
class RawBody:
    """
    A successful response whose body is not JSON.

    Attributes:
        content: The raw body bytes.
        content_type: The response Content-Type header, if any.
        response: The underlying HTTP response, for callers that need headers.
    """

    content: bytes
    content_type: str | None = None
    response: requests.Response | None = field(default=None, repr=False, compare=False)


Body = JsonBody | EmptyBody | RawBody


def body_from_response(response: requests.Response) -> Body:
    """
    Build the body variant for a successful response.

    Never raises on unparsable content: a non-JSON body becomes a RawBody.
    """
    content = response.content or b""
    if response.status_code == 204 or not content.strip():
        return EmptyBody(status_code=response.status_code)

    try:
        return JsonBody(value=response.json())
    except ValueError:
        return RawBody(
            content=content,
            content_type=response.headers.get("Content-Type"),
            response=response,
        )

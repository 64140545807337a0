"""Module for HTTP request messages that carry merge patch documents."""

import multidict

from mergepatch.stream import Stream


APPLICATION_MERGE_PATCH_JSON = "application/merge-patch+json"


Headers = multidict.CIMultiDict


def parse_media_type(value: str | None) -> tuple[str | None, dict[str, str]]:
    """
    Parse a Content-Type header value into a lower-case media type and a dictionary of
    parameters. Parameter names are lower-case; quotes are removed from parameter values.

    Example: "Application/Merge-Patch+JSON; charset=UTF-8" →
    ("application/merge-patch+json", {"charset": "UTF-8"})
    """
    if not value:
        return None, {}
    media_type, *params = value.split(";")
    parameters = {}
    for param in params:
        name, sep, param_value = param.partition("=")
        if sep:
            parameters[name.strip().lower()] = param_value.strip().strip('"')
    return media_type.strip().lower() or None, parameters


class Request:
    """
    HTTP request.

    Parameters and attributes:
    • headers: multi-value dictionary to store headers
    • body: stream for request body, or None
    • method: the HTTP method name, in upper case
    • path: HTTP request target excluding query string
    """

    def __init__(
        self,
        *,
        headers: Headers | None = None,
        body: Stream | None = None,
        method: str = "PATCH",
        path: str = "/",
    ):
        self.headers = Headers(headers or ())
        self.body = body
        self.method = method
        self.path = path

    def __repr__(self):
        return (
            f"Request(headers={self.headers}, body={self.body}, method={self.method}, "
            f"path={self.path})"
        )

    @property
    def content_type(self) -> str | None:
        """Content type of the request body, from the Content-Type header or body stream."""
        return self.headers.get("Content-Type") or getattr(self.body, "content_type", None)

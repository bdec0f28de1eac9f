# storefront/core/security.py

import html
import json
import logging
import re
from typing import Any, Callable, Iterable
from urllib.parse import parse_qsl, unquote, urlencode

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .exceptions import ErrorCode

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "cross-origin",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
}

# Interactive API docs pull their assets from a CDN
CSP_EXEMPT_PREFIXES = ("/docs", "/redoc", "/openapi.json")

SQL_INJECTION_PATTERNS = [
    re.compile(r"\bunion\b(\s+all)?\s+select\b", re.IGNORECASE),
    re.compile(r"\bselect\s+\*\s+from\b", re.IGNORECASE),
    re.compile(r"\b(insert\s+into|delete\s+from|truncate\s+table|alter\s+table)\b", re.IGNORECASE),
    re.compile(r"\bdrop\s+(table|database|schema)\b", re.IGNORECASE),
    re.compile(r"['\"]\s*(or|and)\s+['\"]?\w+['\"]?\s*=\s*['\"]?\w+", re.IGNORECASE),
    re.compile(r";\s*--"),
    re.compile(r"/\*.*\*/", re.DOTALL),
    re.compile(r"\b(sleep|benchmark|pg_sleep)\s*\(", re.IGNORECASE),
    re.compile(r"\binformation_schema\b", re.IGNORECASE),
    re.compile(r"\bexec(ute)?\s+(xp_|sp_)\w+", re.IGNORECASE),
]

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

SANITIZE_METHODS = {"POST", "PUT", "PATCH"}


def contains_sql_injection(value: str) -> bool:
    return any(pattern.search(value) for pattern in SQL_INJECTION_PATTERNS)


def sanitize_string(value: str) -> str:
    """HTML-escape a string and strip control characters."""
    return html.escape(CONTROL_CHARS.sub("", value), quote=True)


def _is_exempt_key(key: Any) -> bool:
    return isinstance(key, str) and "password" in key.lower()


def sanitize_value(value: Any) -> Any:
    """Recursively escape every string in a decoded JSON document."""
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    if isinstance(value, dict):
        return {
            key: item if _is_exempt_key(key) else sanitize_value(item)
            for key, item in value.items()
        }
    return value


def find_sql_injection(value: Any) -> bool:
    """True when any string in a decoded JSON document trips the SQL heuristic."""
    if isinstance(value, str):
        return contains_sql_injection(value)
    if isinstance(value, list):
        return any(find_sql_injection(item) for item in value)
    if isinstance(value, dict):
        return any(
            find_sql_injection(item)
            for key, item in value.items()
            if not _is_exempt_key(key)
        )
    return False


def invalid_input_response() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": ErrorCode.INVALID_INPUT.value,
                "message": "Invalid input detected",
            }
        },
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add a fixed set of hardening headers to every response."""

    def __init__(self, app, headers: dict = None):
        super().__init__(app)
        self.headers = headers or SECURITY_HEADERS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        skip_csp = request.url.path.startswith(CSP_EXEMPT_PREFIXES)
        for name, value in self.headers.items():
            if skip_csp and name == "Content-Security-Policy":
                continue
            response.headers.setdefault(name, value)
        return response


class InputSanitizationMiddleware:
    """
    Reject request input that looks like SQL injection, then HTML-escape the rest.

    Path segments are only checked. Query values and JSON bodies are checked and
    then rewritten with every string escaped. Keys containing "password" are
    left untouched, as are the paths listed in ``exempt_paths``. Queries are
    parameterized by the ORM, so this is a second line of defence only.
    """

    def __init__(self, app, prefix: str = "/api", exempt_paths: Iterable[str] = ()):
        self.app = app
        self.prefix = prefix
        self.exempt_paths = set(exempt_paths)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if not path.startswith(self.prefix) or path in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        if contains_sql_injection(unquote(path)):
            await self._reject(scope, receive, send, "path")
            return

        query_string = scope.get("query_string", b"").decode("latin-1")
        if query_string:
            pairs = parse_qsl(query_string, keep_blank_values=True)
            if any(contains_sql_injection(value) or contains_sql_injection(key) for key, value in pairs):
                await self._reject(scope, receive, send, "query")
                return
            sanitized = urlencode([(key, sanitize_string(value)) for key, value in pairs])
            scope = dict(scope, query_string=sanitized.encode("latin-1"))

        if scope.get("method") in SANITIZE_METHODS and self._is_json(scope):
            body = await self._read_body(receive)
            try:
                document = json.loads(body) if body else None
            except ValueError:
                document = None
            else:
                if find_sql_injection(document):
                    await self._reject(scope, receive, send, "body")
                    return
                if document is not None:
                    body = json.dumps(sanitize_value(document)).encode("utf-8")
                    scope = self._with_content_length(scope, len(body))
            receive = self._replay(body, receive)

        await self.app(scope, receive, send)

    @staticmethod
    def _is_json(scope) -> bool:
        for name, value in scope.get("headers", []):
            if name == b"content-type":
                return b"json" in value.lower()
        return False

    @staticmethod
    async def _read_body(receive) -> bytes:
        chunks = []
        more_body = True
        while more_body:
            message = await receive()
            chunks.append(message.get("body", b""))
            more_body = message.get("more_body", False)
        return b"".join(chunks)

    @staticmethod
    def _replay(body: bytes, receive):
        sent = False

        async def replay():
            nonlocal sent
            if sent:
                # body already delivered; wait for the real disconnect
                return await receive()
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}

        return replay

    @staticmethod
    def _with_content_length(scope, length: int):
        headers = [(name, value) for name, value in scope.get("headers", []) if name != b"content-length"]
        headers.append((b"content-length", str(length).encode("latin-1")))
        return dict(scope, headers=headers)

    async def _reject(self, scope, receive, send, where: str):
        client = scope.get("client")
        logger.warning(
            f"Blocked suspicious {where} input from {client[0] if client else 'unknown'} "
            f"on {scope.get('method')} {scope.get('path')}"
        )
        await invalid_input_response()(scope, receive, send)

"""Wrapper httpx: la capa de requests consciente del tenant.

Por qué un wrapper:
- Estandariza timeouts, headers, credenciales y logging en todas las llamadas.
- Normaliza las tres formas de una respuesta (error, vacía, datos) para que el
  cache y las mutaciones optimistas nunca vean HTTP crudo.
- Fácil de testear: el transport es inyectable (`httpx.MockTransport`).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Literal

import httpx
from bs4 import BeautifulSoup

from core.config import AppSettings
from core.domain.errors import (
    TransportError,
    UnauthorizedError,
    UnexpectedHtmlError,
    error_for_status,
)
from core.domain.models import FormPayload
from core.services.tenant_resolver import TenantResolver

logger = logging.getLogger(__name__)

TENANT_HEADER = "x-tenant-id"

HTML_RESPONSE_MESSAGE = (
    "The server returned an HTML page instead of data. "
    "This usually means a routing or authentication problem."
)

Unauthorized = Literal["throw", "return_null"]


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults seguros.

    Por qué un builder:
    - Centraliza base URL/timeouts/headers para que todas las fachadas se comporten igual.
    - El cookie jar es la credencial de sesión; siempre se envía.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        base_url=settings.base_url,
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        cookies=cookies,
        transport=transport,
    )


def html_page_title(html: str) -> str | None:
    """`<title>` de una página HTML (para describir respuestas mal ruteadas)."""

    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip() or None
    return None


def _url_of(response: httpx.Response) -> str:
    try:
        return str(response.request.url)
    except RuntimeError:
        return "<unknown url>"


def looks_like_html(text: str) -> bool:
    head = text.lstrip()[:15].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def is_empty_response(response: httpx.Response) -> bool:
    return response.status_code == 204 or response.headers.get("content-length") == "0"


def parse_response_body(response: httpx.Response, *, verbose: bool = False) -> Any:
    """Decodifica una respuesta exitosa.

    - 204 / content-length cero: `None`, el body nunca se lee.
    - Texto vacío: `None`.
    - Una página HTML: `UnexpectedHtmlError`.
    - Cualquier otra cosa que no sea JSON: `None` (se trata como "sin datos").
    """

    if is_empty_response(response):
        return None

    text = response.text
    if verbose:
        logger.debug("Raw response text (first 200 chars): %s", text[:200])

    stripped = text.strip()
    if not stripped:
        return None

    if looks_like_html(stripped):
        title = html_page_title(stripped)
        message = HTML_RESPONSE_MESSAGE
        if title:
            message = f"{message} (page title: {title})"
        logger.error("Server returned HTML instead of JSON for %s", _url_of(response))
        raise UnexpectedHtmlError(message, status=response.status_code, title=title)

    try:
        return json.loads(stripped)
    except ValueError:
        logger.warning("Unparseable response body from %s; treating as no data", _url_of(response))
        return None


def raise_for_status(response: httpx.Response) -> None:
    """Lanza `ApiError` para un status no exitoso con el mejor mensaje disponible.

    Preferencia: `message` del JSON > texto crudo > `"{status}: {reason}"`. Un fallo
    al leer el body nunca oculta el error HTTP en sí.
    """

    if response.is_success:
        return

    status = response.status_code
    message = f"{status}: {response.reason_phrase}"
    errors: list[Any] | None = None
    details: dict[str, Any] = {}

    content_type = response.headers.get("content-type", "")
    parsed = False
    if "json" in content_type:
        try:
            payload = response.json()
        except (ValueError, UnicodeDecodeError):
            payload = None
        else:
            parsed = True
        if isinstance(payload, dict):
            if isinstance(payload.get("message"), str) and payload["message"]:
                message = payload["message"]
            if isinstance(payload.get("errors"), list):
                errors = payload["errors"]
            details = {k: v for k, v in payload.items() if k not in ("message", "errors")}

    if not parsed:
        try:
            text = response.text.strip()
        except (UnicodeDecodeError, httpx.ResponseNotRead):
            text = ""
        if text and not looks_like_html(text):
            message = f"{status}: {text}"

    logger.debug("API error %s: %s", status, message)
    raise error_for_status(status, message, errors=errors, details=details)


class ApiClient:
    """`request(url, method, body)` con header de tenant, credenciales y resultados normalizados."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        resolver: TenantResolver,
        *,
        verbose: bool = False,
    ) -> None:
        self._http = http
        self._resolver = resolver
        self._verbose = verbose

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    def headers_for(self, body: Any = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        tenant_id = self._resolver.resolve_tenant_id()
        if tenant_id:
            headers[TENANT_HEADER] = tenant_id
        if body is not None and not isinstance(body, FormPayload):
            headers["Content-Type"] = "application/json"
        return headers

    async def request(self, url: str, method: str = "GET", body: Any = None) -> Any:
        method = method.upper()
        headers = self.headers_for(body)
        kwargs: dict[str, Any] = {"headers": headers}
        if isinstance(body, FormPayload):
            # Sin content-type: httpx escribe el boundary multipart.
            kwargs["data"] = body.data
            kwargs["files"] = body.files
        elif body is not None:
            kwargs["content"] = json.dumps(body, ensure_ascii=False, default=str).encode("utf-8")

        logger.debug("API request %s %s (tenant=%s)", method, url, headers.get(TENANT_HEADER))
        if self._verbose and body is not None and not isinstance(body, FormPayload):
            logger.debug("API request body: %s", body)

        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Transport failure on %s %s: %s", method, url, exc)
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        logger.debug("API response %s %s -> %s", method, url, response.status_code)
        raise_for_status(response)
        data = parse_response_body(response, verbose=self._verbose)
        if self._verbose:
            logger.debug("API response data: %s", data)
        return data

    async def get(self, url: str) -> Any:
        return await self.request(url, "GET")

    async def post(self, url: str, body: Any = None) -> Any:
        return await self.request(url, "POST", body)

    async def patch(self, url: str, body: Any = None) -> Any:
        return await self.request(url, "PATCH", body)

    async def put(self, url: str, body: Any = None) -> Any:
        return await self.request(url, "PUT", body)

    async def delete(self, url: str) -> Any:
        return await self.request(url, "DELETE")

    def query_fn(
        self,
        url: str,
        *,
        on_401: Unauthorized = "throw",
        unauthorized_value: Any = None,
    ) -> Callable[[], Awaitable[Any]]:
        """Función de fetch para el cache con política de 401 por query."""

        async def fetch() -> Any:
            try:
                return await self.request(url, "GET")
            except UnauthorizedError:
                if on_401 == "return_null":
                    return unauthorized_value
                raise

        return fetch

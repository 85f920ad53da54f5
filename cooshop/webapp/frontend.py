"""Server-rendered frontend that talks to the backend API.

Pages are rendered with Jinja2 from backend JSON, and `/api/*` is proxied so
browsers never call the backend directly.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .. import __version__, config
from .auth import ADMIN_PASSWORD_HEADER

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def format_won(value) -> str:
    """Format an integer price as Korean won."""
    if value is None or value == "":
        return "-"
    try:
        return f"{int(value):,}원"
    except (TypeError, ValueError):
        return str(value)


class BackendClient:
    """Async HTTP client bound to the backend base URL.

    Page fetches carry `referer` so they pass the backend's production
    referer check; proxied calls keep whatever the browser sent.
    """

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        referer: str | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.referer = referer
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=httpx.Timeout(30.0),
        )

    async def get_json(self, path: str, params: dict | None = None, headers: dict | None = None) -> dict:
        request_headers = {"Referer": self.referer} if self.referer else {}
        request_headers.update(headers or {})
        resp = await self._client.get(path, params=params, headers=request_headers)
        resp.raise_for_status()
        return resp.json()

    async def forward(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        content: bytes | None = None,
    ) -> httpx.Response:
        return await self._client.request(method, path, headers=headers, content=content)

    async def aclose(self) -> None:
        await self._client.aclose()


def templates(request: Request) -> Jinja2Templates:
    """Get templates instance from app state."""
    return request.app.state.templates


def backend(request: Request) -> BackendClient:
    return request.app.state.backend


def client_headers(request: Request, **extra: str) -> dict[str, str]:
    """Headers naming the browser behind a backend call, for per-client rate limits."""
    headers = {"X-Forwarded-For": request.client.host if request.client else "unknown"}
    headers.update(extra)
    return headers


def _render(request: Request, name: str, context: dict, status_code: int = 200) -> HTMLResponse:
    return templates(request).TemplateResponse(request, name, context, status_code=status_code)


def create_frontend_app(
    backend_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    public_url: str | None = None,
) -> FastAPI:
    """Create the frontend application.

    `public_url` is the site address browsers use; it must be one of the
    backend's allowed origins when the backend runs in production.
    """
    public_url = (public_url or config.FRONTEND_URL).rstrip("/")
    client = BackendClient(
        backend_url or config.BACKEND_URL,
        transport=transport,
        referer=f"{public_url}/",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await client.aclose()

    app = FastAPI(title="Cooshop Frontend", version=__version__, lifespan=lifespan)
    app.state.backend = client

    app.state.templates = Jinja2Templates(directory=TEMPLATES_DIR)
    app.state.templates.env.filters["won"] = format_won

    # Mount static files if directory exists
    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request, q: str | None = None):
        """Search results, or top discounts and recent updates."""
        context = {"q": q or "", "results": None, "discounts": [], "recent": [], "error": None}
        try:
            if q and q.strip():
                data = await backend(request).get_json(
                    "/api/products/search", {"q": q.strip()}, headers=client_headers(request)
                )
                context["results"] = data.get("data", [])
            else:
                discounts = await backend(request).get_json(
                    "/api/products/top/discounts", {"limit": 20}, headers=client_headers(request)
                )
                recent = await backend(request).get_json(
                    "/api/products", {"limit": 20}, headers=client_headers(request)
                )
                context["discounts"] = discounts.get("data", [])
                context["recent"] = recent.get("data", [])
        except httpx.HTTPError as e:
            logger.error(f"Home page backend error: {e}")
            context["error"] = "Could not load products. Please try again later."

        return _render(request, "index.html", context)

    @app.get("/product/{product_id}", response_class=HTMLResponse)
    async def product_page(request: Request, product_id: str, days: int = 30):
        """Product detail with a price history chart."""
        try:
            data = await backend(request).get_json(
                f"/api/products/{product_id}", {"days": days}, headers=client_headers(request)
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return _render(request, "error.html", {"message": "Product not found."}, status_code=404)
            logger.error(f"Product page backend error: {e}")
            return _render(request, "error.html", {"message": "Could not load product."}, status_code=502)
        except httpx.HTTPError as e:
            logger.error(f"Product page backend error: {e}")
            return _render(request, "error.html", {"message": "Could not load product."}, status_code=502)

        product = data["data"]
        return _render(
            request,
            "product.html",
            {
                "product": product,
                "days": days,
                "chart": {
                    "labels": [h["date"] for h in product.get("history", [])],
                    "prices": [h["price"] for h in product.get("history", [])],
                },
            },
        )

    @app.get("/admin", response_class=HTMLResponse)
    async def admin_login(request: Request):
        return _render(request, "admin.html", {"authenticated": False, "error": None})

    @app.post("/admin", response_class=HTMLResponse)
    async def admin_dashboard(
        request: Request,
        password: str = Form(...),
        page: int = Form(1),
        q: str = Form(""),
    ):
        """Admin dashboard, fetched from the backend with the submitted password."""
        headers = client_headers(request, **{ADMIN_PASSWORD_HEADER: password})
        params = {"page": page, "limit": 50}
        if q:
            params["q"] = q
        try:
            stats = await backend(request).get_json("/api/sys-admin-control/stats", headers=headers)
            listing = await backend(request).get_json(
                "/api/sys-admin-control/products", params=params, headers=headers
            )
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            message = "Invalid password." if status_code == 401 else "Admin API unavailable."
            return _render(
                request,
                "admin.html",
                {"authenticated": False, "error": message},
                status_code=status_code,
            )
        except httpx.HTTPError as e:
            logger.error(f"Admin backend error: {e}")
            return _render(
                request,
                "admin.html",
                {"authenticated": False, "error": "Admin API unavailable."},
                status_code=502,
            )

        return _render(
            request,
            "admin.html",
            {
                "authenticated": True,
                "password": password,
                "stats": stats,
                "listing": listing,
                "q": q,
                "error": None,
            },
        )

    @app.api_route("/api/{path:path}", methods=PROXY_METHODS)
    async def api_proxy(request: Request, path: str):
        """Forward /api/* to the backend, keeping its status code and body."""
        target = f"/api/{path}"
        if request.url.query:
            target = f"{target}?{request.url.query}"

        headers = client_headers(request, **{"Content-Type": "application/json"})
        if admin_password := request.headers.get(ADMIN_PASSWORD_HEADER):
            headers[ADMIN_PASSWORD_HEADER] = admin_password
        if referer := request.headers.get("referer"):
            headers["Referer"] = referer

        body = None
        if request.method not in ("GET", "HEAD"):
            body = await request.body()

        try:
            resp = await backend(request).forward(request.method, target, headers, body)
        except httpx.HTTPError as e:
            logger.error(f"API proxy error: {target}: {e}")
            return JSONResponse({"error": "Backend request failed"}, status_code=502)

        if resp.headers.get("content-type", "").startswith("application/json"):
            try:
                payload = resp.json()
            except ValueError as e:
                logger.error(f"API proxy got malformed JSON from {target}: {e}")
                return JSONResponse({"error": "Backend request failed"}, status_code=502)
            return JSONResponse(payload, status_code=resp.status_code)
        return Response(
            content=resp.content,
            status_code=resp.status_code,
            media_type=resp.headers.get("content-type"),
        )

    return app

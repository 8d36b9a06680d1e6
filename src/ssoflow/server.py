"""FastAPI server for the federation workflow.

Provides HTTP endpoints for:
- The OAuth redirect dance and per-provider session status
- Streaming step execution as server-sent events
- A read-only dashboard of the step graph

Tokens live in encrypted, chunked, HTTP-only cookies. Workflow state is
owned by the browser and sent with each stream request; the server keeps
nothing between requests.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from jinja2 import Environment, FileSystemLoader

from ssoflow import __version__
from ssoflow_runtime.auth import PROVIDER_NAMES, TokenManager, build_auth_url, exchange_code
from ssoflow_runtime.drivers import ResponseCookieJar
from ssoflow_runtime.engine import StepRunner
from ssoflow_runtime.env import SsoflowSettings, get_settings
from ssoflow_runtime.events import CompleteEvent, StateEvent, encode_sse
from ssoflow_runtime.exceptions import ConfigurationError, InvalidStateError, ReauthRequired, TokenExchangeError
from ssoflow_runtime.http import GOOGLE, MICROSOFT
from ssoflow_runtime.models import StepState, StepStatus
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.session import ACTIONS, WorkflowSession
from ssoflow_runtime.status import compute_all
from ssoflow_runtime.steps import build_federation_workflow
from ssoflow_runtime.variables import Var, default_values

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}

TOKEN_VARIABLES = {GOOGLE: Var.GOOGLE_ACCESS_TOKEN, MICROSOFT: Var.MS_GRAPH_TOKEN}

REFRESH_ERRORS = {"reauth": "reauth_required", "failed": "refresh_failed"}


def _get_jinja_env() -> Environment:
    """Get Jinja2 environment for server templates."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=True,
    )


def parse_vars(raw: str | None, definition: WorkflowDefinition) -> dict[str, Any]:
    """Decode the client's variable snapshot, keeping only known names.

    Malformed JSON is treated as an empty snapshot.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed vars parameter")
        return {}
    if not isinstance(data, dict):
        return {}
    return {name: value for name, value in data.items() if name in definition.variables and value is not None}


def _check_provider(provider: str) -> None:
    if provider not in PROVIDER_NAMES:
        raise HTTPException(status_code=400, detail="Invalid provider")


def create_app(
    settings: SsoflowSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    definition: WorkflowDefinition | None = None,
) -> FastAPI:
    """Create FastAPI application for the ssoflow server.

    Args:
        settings: Defaults to settings loaded from the environment
        transport: httpx transport for provider calls, swapped in tests
        definition: Defaults to the federation workflow
    """
    settings = settings or get_settings()
    definition = definition or build_federation_workflow()
    runner = StepRunner(
        definition,
        transport=transport,
        timeout=settings.http_timeout,
        max_retries=settings.http_max_retries,
    )

    app = FastAPI(
        title="ssoflow",
        description="Google Workspace and Microsoft Entra federation workflow",
        version=__version__,
    )

    def cookie_jar(request: Request) -> ResponseCookieJar:
        return ResponseCookieJar(dict(request.cookies), secure=settings.cookie_secure)

    def token_manager(jar: ResponseCookieJar) -> TokenManager:
        return TokenManager(jar, settings, transport=transport)

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error: %s", exc.message)
        return JSONResponse({"error": exc.message}, status_code=500)

    # --- Dashboard ---

    @app.get("/", response_class=HTMLResponse)
    async def dashboard(request: Request, vars: str | None = None, error: str | None = None) -> str:
        """HTML dashboard showing steps and their effective status."""
        values = {**default_values(definition.variables.values()), **parse_vars(vars, definition)}
        manager = token_manager(cookie_jar(request))
        for provider, name in TOKEN_VARIABLES.items():
            token = manager.get_token(provider) if settings.auth_secret else None
            if token is not None:
                values[name] = token.access_token
        statuses = compute_all(definition, {}, values)

        steps = [
            {
                "id": step.id,
                "title": step.title,
                "requires": step.requires,
                "provides": step.provides,
                "status": statuses[step.id].status.value,
                "block_reason": statuses[step.id].block_reason,
            }
            for step in map(definition.get, definition.topological_order())
        ]
        env = _get_jinja_env()
        template = env.get_template("dashboard.html")
        return template.render(
            version=__version__,
            error=error,
            steps=steps,
            providers={provider: TOKEN_VARIABLES[provider] in values for provider in PROVIDER_NAMES},
        )

    # --- Auth ---

    @app.get("/api/auth/session")
    async def session(request: Request) -> JSONResponse:
        """Per-provider token status. Refreshes tokens close to expiry."""
        jar = cookie_jar(request)
        manager = token_manager(jar)
        results = await asyncio.gather(*(manager.refresh_with_result(p) for p in PROVIDER_NAMES))

        body: dict[str, Any] = {}
        for provider, result in zip(PROVIDER_NAMES, results):
            entry: dict[str, Any] = {
                "authenticated": result.token is not None,
                "expiresAt": result.token.expires_at if result.token else None,
                "scope": result.token.scope if result.token else [],
            }
            if result.status in REFRESH_ERRORS:
                entry["error"] = REFRESH_ERRORS[result.status]
            body[provider] = entry

        response = JSONResponse(body)
        jar.apply(response)
        return response

    @app.get("/api/auth/{provider}")
    async def authorize(provider: str, request: Request) -> RedirectResponse:
        """Start the OAuth flow for a provider."""
        _check_provider(provider)
        jar = cookie_jar(request)
        state = token_manager(jar).create_state(provider)
        response = RedirectResponse(build_auth_url(provider, state, settings), status_code=302)
        jar.apply(response)
        return response

    @app.get("/api/auth/callback/{provider}")
    async def callback(
        provider: str,
        request: Request,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
    ) -> RedirectResponse:
        """Finish the OAuth flow and store the token."""
        _check_provider(provider)
        if error:
            logger.warning("%s authorization returned error: %s", provider, error)
            return RedirectResponse(f"/?error={quote(error)}", status_code=302)
        if not code or not state:
            return RedirectResponse("/?error=missing_params", status_code=302)

        jar = cookie_jar(request)
        manager = token_manager(jar)
        try:
            manager.validate_state(state, provider)
            token = await exchange_code(provider, code, settings, transport=transport)
        except InvalidStateError as e:
            logger.warning("Rejected %s callback: %s", provider, e.message)
            response = RedirectResponse("/?error=invalid_state", status_code=302)
        except TokenExchangeError as e:
            logger.error("%s", e.message)
            response = RedirectResponse("/?error=token_exchange_failed", status_code=302)
        else:
            manager.set_token(provider, token)
            response = RedirectResponse("/", status_code=302)
        jar.apply(response)
        return response

    @app.post("/api/auth/signout/{provider}")
    async def signout(provider: str, request: Request) -> JSONResponse:
        """Clear stored tokens for one provider, or "all"."""
        providers = PROVIDER_NAMES if provider == "all" else (provider,)
        for name in providers:
            _check_provider(name)

        jar = cookie_jar(request)
        manager = token_manager(jar)
        for name in providers:
            manager.clear_token(name)
        response = JSONResponse({"signedOut": list(providers)})
        jar.apply(response)
        return response

    # --- Workflow ---

    @app.get("/api/workflow/steps/{step_id}/stream")
    async def stream_step(
        step_id: str,
        request: Request,
        vars: str | None = None,
        action: str = "run",
    ) -> StreamingResponse:
        """Run one step and stream its events as server-sent events."""
        if step_id not in definition:
            raise HTTPException(status_code=400, detail="Invalid step id")
        if action not in ACTIONS:
            raise HTTPException(status_code=400, detail="Invalid action")

        jar = cookie_jar(request)
        manager = token_manager(jar)
        values = {**default_values(definition.variables.values()), **parse_vars(vars, definition)}
        reauth: list[str] = []
        for provider, name in TOKEN_VARIABLES.items():
            try:
                token = await manager.require_token(provider)
            except ReauthRequired as e:
                reauth.append(str(e))
                continue
            if token is not None:
                values[name] = token.access_token

        has_token = any(values.get(name) for name in TOKEN_VARIABLES.values())
        no_token_error = reauth[0] if reauth else "Missing provider tokens"
        session = WorkflowSession(definition, values=values, runner=runner)

        async def frames() -> AsyncIterator[str]:
            yield ":ok\n\n"
            try:
                if not has_token:
                    state = {"status": StepStatus.BLOCKED.value, "error": no_token_error}
                    yield encode_sse(StateEvent(step_id=step_id, trace_id="error", state=state))
                    final = StepState(status=StepStatus.BLOCKED, error=no_token_error)
                    yield encode_sse(CompleteEvent(step_id=step_id, trace_id="error", state=final))
                    return
                async for event in session.stream(step_id, action):
                    yield encode_sse(event)
            finally:
                session.close()

        response = StreamingResponse(frames(), media_type="text/event-stream", headers=STREAM_HEADERS)
        jar.apply(response)
        return response

    return app


def run_server(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the ssoflow server with uvicorn."""
    import uvicorn

    # Filter out session polling from access logs
    class QuietAccessFilter(logging.Filter):
        """Filter out repetitive polling requests from logs."""

        QUIET_PATHS = {"/api/auth/session"}

        def filter(self, record: logging.LogRecord) -> bool:
            msg = record.getMessage()
            return not any(path in msg for path in self.QUIET_PATHS)

    logging.getLogger("uvicorn.access").addFilter(QuietAccessFilter())

    app = create_app()
    uvicorn.run(app, host=host, port=port)

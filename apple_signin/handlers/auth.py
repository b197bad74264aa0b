"""Auth endpoints.

Runs the request and callback phases of the registered strategies:

- `GET /auth/{provider}` redirects to the provider.
- `GET|POST /auth/{provider}/callback` receives the provider's answer. Apple posts the
  callback as a form when the name or email scope is requested.
"""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.responses import Response

from apple_signin.config import get_config
from apple_signin.models.errors import StrategyNotFoundError
from apple_signin.registry.strategy_registry import RegisteredStrategy, StrategyRegistry
from apple_signin.strategies.base import RequestContext
from apple_signin.utils.context import auth_result_var
from apple_signin.utils.logging import get_logger

router = APIRouter(prefix="/auth")
logger = get_logger(__name__)

STATE_COOKIE_MAX_AGE = 600


def _lookup(request: Request, provider: str) -> RegisteredStrategy:
    registry: StrategyRegistry = request.app.state.registry
    try:
        return registry.get(provider)
    except StrategyNotFoundError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e


def _callback_url(request: Request, entry: RegisteredStrategy, provider: str) -> str:
    base = entry.strategy.config.redirect_base or str(request.base_url)
    return f"{base.rstrip('/')}/auth/{provider}/callback"


async def _build_context(request: Request, provider: str) -> tuple[RegisteredStrategy, RequestContext]:
    entry = _lookup(request, provider)

    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({key: value for key, value in form.items() if isinstance(value, str)})

    ctx = RequestContext(
        provider=provider,
        params=params,
        callback_url=_callback_url(request, entry, provider),
        request_options=dict(entry.options),
    )
    return entry, ctx


@router.get("/{provider}")
async def request_phase(provider: str, request: Request) -> Response:
    """Redirects the user-agent to the provider and remembers the issued state."""
    entry, ctx = await _build_context(request, provider)
    response = await entry.strategy.handle_request(ctx)

    config = get_config()
    response.set_cookie(
        config.state_cookie_name,
        ctx.state_param or "",
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=config.state_cookie_secure,
        # Apple's form_post callback is a cross-site POST
        samesite="none" if config.state_cookie_secure else "lax",
    )
    return response


@router.api_route("/{provider}/callback", methods=["GET", "POST"])
async def callback_phase(provider: str, request: Request) -> JSONResponse:
    """
    Completes the sign in.

    Returns the AuthResult on success, or the recorded failures with a 401.
    """
    entry, ctx = await _build_context(request, provider)
    config = get_config()

    auth = await entry.strategy.run_callback(
        ctx, expected_state=request.cookies.get(config.state_cookie_name)
    )

    if auth is None:
        response = JSONResponse(
            {"provider": provider, "errors": [e.model_dump() for e in ctx.errors]},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    else:
        auth_result_var.set(auth)
        logger.info("auth_callback_succeeded", provider=provider, uid=auth.uid)
        response = JSONResponse(auth.model_dump(mode="json", exclude={"extra"}))

    response.delete_cookie(config.state_cookie_name)
    return response

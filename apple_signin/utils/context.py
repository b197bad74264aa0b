from contextvars import ContextVar

from apple_signin.models.auth import AuthResult

# Result of the sign in handled by the current request, set by the callback endpoint
# once the strategy succeeded. Downstream code can read it without the request object.
auth_result_var: ContextVar[AuthResult | None] = ContextVar("auth_result", default=None)

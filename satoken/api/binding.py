"""FastAPI integration for the authentication manager.

Typical wiring::

    manager = build_manager()
    auth = FastAPIAuth(manager)
    auth.install(app)

    @app.get("/me")
    def me(login_id: str = Depends(auth.require_login())):
        ...
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from fastapi import Depends, FastAPI, Request

from satoken.api.error_handling import register_exception_handlers, service_error_response
from satoken.logging import get_logger, set_correlation_id
from satoken.service.errors import NotLoginError, ServiceError
from satoken.service.manager import Manager

logger = get_logger(__name__)

_BEARER_PREFIX = "bearer "


class AuthBinding(Protocol):
    """What a web framework needs from the core to guard its routes."""

    def check_login(self, token: Optional[str]) -> str: ...

    def has_permission(self, login_id: str, permission: str) -> bool: ...

    def has_role(self, login_id: str, role: str) -> bool: ...

    def write_error(self, exc: ServiceError) -> Any: ...


class FastAPIAuth:
    def __init__(self, manager: Manager) -> None:
        self.manager = manager

    @property
    def token_name(self) -> str:
        return self.manager.settings.token_name

    def install(self, app: FastAPI) -> None:
        """Register error handlers and the request correlation-ID middleware."""
        register_exception_handlers(app, self)

        @app.middleware("http")
        async def add_correlation_id(request: Request, call_next):
            correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
            response = await call_next(request)
            response.headers["X-Request-ID"] = correlation_id
            return response

    def extract_token(self, request: Request) -> Optional[str]:
        """Find the token in the named header, a Bearer header, or the named cookie."""
        token = request.headers.get(self.token_name)
        if token:
            return token.strip()
        authorization = request.headers.get("Authorization")
        if authorization and authorization.lower().startswith(_BEARER_PREFIX):
            token = authorization[len(_BEARER_PREFIX):].strip()
            if token:
                return token
        token = request.cookies.get(self.token_name)
        return token or None

    # AuthBinding

    def check_login(self, token: Optional[str]) -> str:
        if not token:
            raise NotLoginError("no token supplied", detail={"token_name": self.token_name})
        return self.manager.get_login_id(token)

    def has_permission(self, login_id: str, permission: str) -> bool:
        return self.manager.has_permission(login_id, permission)

    def has_role(self, login_id: str, role: str) -> bool:
        return self.manager.has_role(login_id, role)

    def write_error(self, exc: ServiceError) -> Any:
        return service_error_response(exc)

    # Dependency factories

    def require_login(self) -> Callable[..., str]:
        def dependency(request: Request) -> str:
            return self.check_login(self.extract_token(request))

        return dependency

    def require_permission(self, *permissions: str) -> Callable[..., str]:
        """Dependency passing only when every listed permission is granted."""
        login_dependency = self.require_login()

        def dependency(login_id: str = Depends(login_dependency)) -> str:
            self.manager.check_permissions_and(login_id, permissions)
            return login_id

        return dependency

    def require_role(self, *roles: str) -> Callable[..., str]:
        login_dependency = self.require_login()

        def dependency(login_id: str = Depends(login_dependency)) -> str:
            self.manager.check_roles_and(login_id, roles)
            return login_id

        return dependency

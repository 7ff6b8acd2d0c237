"""
session.py — Session Lifecycle Coordinator

AuthStore and CartSyncEngine are independent on purpose. AuthSessionManager
owns both and is the one place where they are paired:

    sign in   -> auth.login(...)  then cart.sync_cart(user.id)
    sign out  -> cart.logout()    then auth.logout()
    401       -> both reset, user sent to login with the intended destination kept
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import ApiError, InputValidationError
from .models import LoginForm, Navigation, RegisterForm, User

log = logging.getLogger(__name__)


class AuthResult(BaseModel):
    ok: bool
    user: Optional[User] = None
    fieldErrors: dict = Field(default_factory=dict)
    navigation: Optional[Navigation] = None


class AuthSessionManager:
    """
    Args:
        api (ApiClient): Backend client; its 401 hook is bound to this manager.
        auth (AuthStore): Session store.
        cart (CartSyncEngine): Cart engine.
        notifier (Notifier): User notifications.
    """

    def __init__(self, api, auth, cart, notifier):
        self.api = api
        self.auth = auth
        self.cart = cart
        self.notifier = notifier
        self.pending_navigation = None
        self.current_route: Optional[str] = None
        api.token_provider = lambda: self.auth.token
        api.on_unauthorized = self.handle_session_expired

    def _establish(self, data: dict, destination: str) -> AuthResult:
        user = User.model_validate(data["user"])
        self.auth.login(user, data["accessToken"], data.get("refreshToken"))
        self.cart.sync_cart(user.id)
        return AuthResult(ok=True, user=user, navigation=Navigation(path=destination))

    def sign_in(self, email: str, password: str, destination: str = "/") -> AuthResult:
        """
        Logs in and loads the account's cart.

        Raises:
            InputValidationError: When the form is invalid; nothing is sent.
        """
        try:
            form = LoginForm(email=email, password=password)
        except ValidationError as e:
            raise InputValidationError.from_pydantic(e) from e

        try:
            data = self.api.post("/auth/login", json=form.model_dump())
        except ApiError as e:
            log.warning(f"[Auth: {form.email}] Login failed: {e.message}")
            self.notifier.report(e, "Login failed. Please try again.")
            return AuthResult(ok=False, fieldErrors=e.field_errors)

        result = self._establish(data, destination)
        self.notifier.success("Login successful!")
        return result

    def register(self, name: str, email: str, password: str, phone: Optional[str] = None,
                 destination: str = "/") -> AuthResult:
        """
        Creates an account and signs it in.

        Raises:
            InputValidationError: When the form is invalid; nothing is sent.
        """
        try:
            form = RegisterForm(name=name, email=email, password=password, phone=phone)
        except ValidationError as e:
            raise InputValidationError.from_pydantic(e) from e

        try:
            data = self.api.post("/auth/register", json=form.model_dump(exclude_none=True))
        except ApiError as e:
            log.warning(f"[Auth: {form.email}] Registration failed: {e.message}")
            self.notifier.report(e, "Registration failed. Please try again.")
            return AuthResult(ok=False, fieldErrors=e.field_errors)

        result = self._establish(data, destination)
        self.notifier.success("Account created successfully!")
        return result

    def sign_out(self) -> Navigation:
        self.current_route = None
        self.cart.logout()
        self.auth.logout()
        self.notifier.success("Logged out successfully")
        return Navigation(path="/")

    def restore(self):
        """
        Re-attaches the persisted session at process start.

        A persisted session gets its cart synced from the server. Without one, a
        cart still owned by a user is dropped; a guest cart is kept.
        """
        if self.auth.is_authenticated and self.auth.user is not None:
            self.cart.sync_cart(self.auth.user.id)
        elif self.cart.user_id is not None:
            log.info(f"[Cart: {self.cart.user_id}] Persisted cart has no session, resetting to guest.")
            self.cart.logout()

    def handle_session_expired(self, destination: Optional[str] = None) -> Navigation:
        """
        Implicit logout after a 401. Resets both stores and sends the user to login.

        Without an explicit destination the route last admitted by require_auth
        (or set on current_route by the UI) is kept as the login redirect target.
        """
        destination = destination or self.current_route
        self.current_route = None
        if self.auth.user is not None:
            log.warning(f"[Auth: {self.auth.user.email}] Session rejected by server, signing out.")
        self.cart.logout()
        self.auth.logout()
        self.notifier.error("Your session has expired. Please log in again.")
        state = {"from": destination} if destination else {}
        self.pending_navigation = Navigation(path="/login", state=state)
        return self.pending_navigation

    def require_auth(self, destination: str) -> Optional[Navigation]:
        """
        Route guard. Returns where to go instead, or None when access is allowed.
        An admitted destination becomes current_route.
        """
        if self.auth.is_authenticated:
            self.current_route = destination
            return None
        return Navigation(path="/login", state={"from": destination})

    def require_admin(self, destination: str) -> Optional[Navigation]:
        redirect = self.require_auth(destination)
        if redirect is not None:
            return redirect
        if not self.auth.is_admin:
            return Navigation(path="/")
        return None

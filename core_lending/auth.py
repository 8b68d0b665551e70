"""
Operator Authentication Module

Sign-up, sign-in, sign-out and password recovery for back-office operators,
plus an auth-state listener hook. ``InMemoryAuthService`` keeps scrypt
hashed credentials in process; ``SupabaseAuthService`` talks to the hosted
GoTrue endpoints (/auth/v1/...).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional
import hashlib
import hmac
import logging
import secrets
import uuid

import httpx

from .config import LendingConfig
from .storage import BackendError

logger = logging.getLogger("lending.auth")


class AuthError(BackendError):
    """Rejected credentials or a failed auth call"""


class AuthEvent(Enum):
    """Auth-state changes delivered to listeners"""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_CREATED = "USER_CREATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass
class AuthUser:
    """Authenticated operator"""
    id: str
    email: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class AuthSession:
    """Signed-in session"""
    access_token: str
    user: AuthUser
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at


AuthListener = Callable[[AuthEvent, Optional[AuthSession]], None]


class AuthService(ABC):
    """Abstract interface for operator authentication"""

    def __init__(self):
        self._listeners: List[AuthListener] = []
        self.session: Optional[AuthSession] = None

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthUser:
        """Register an operator"""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Open a session; raises AuthError on bad credentials"""
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Close the current session"""
        pass

    @abstractmethod
    async def reset_password(self, email: str) -> None:
        """Send a password recovery e-mail"""
        pass

    async def close(self) -> None:
        """Release connections (default no-op)"""
        pass

    @property
    def current_user(self) -> Optional[AuthUser]:
        if self.session is None or self.session.is_expired:
            return None
        return self.session.user

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener and return a function that removes it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as e:
                # Listener errors never fail the auth call
                logger.error(f"Error in auth listener for {event.value}: {e}")

    @staticmethod
    def _validate(email: str, password: str) -> str:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise AuthError("A valid e-mail is required", operation="auth")
        if not password or len(password) < 6:
            raise AuthError("Password must have at least 6 characters", operation="auth")
        return email


@dataclass
class _Credential:
    user: AuthUser
    salt: str
    password_hash: str


class InMemoryAuthService(AuthService):
    """Process-local auth with scrypt hashed passwords"""

    def __init__(self, session_hours: int = 8):
        super().__init__()
        self.session_hours = session_hours
        self._credentials: Dict[str, _Credential] = {}
        self.recovery_requests: List[str] = []

    @staticmethod
    def _hash_password(password: str, salt: str) -> str:
        return hashlib.scrypt(password.encode(), salt=salt.encode(), n=16384, r=8, p=1).hex()

    async def sign_up(self, email: str, password: str) -> AuthUser:
        email = self._validate(email, password)
        if email in self._credentials:
            raise AuthError("User already registered", operation="sign_up", status_code=422)

        salt = secrets.token_hex(16)
        user = AuthUser(id=str(uuid.uuid4()), email=email)
        self._credentials[email] = _Credential(user, salt, self._hash_password(password, salt))
        logger.info(f"Registered operator {user.id}")
        self._notify(AuthEvent.USER_CREATED, None)
        return user

    async def sign_in(self, email: str, password: str) -> AuthSession:
        credential = self._credentials.get((email or "").strip().lower())
        if credential is None or not hmac.compare_digest(
                credential.password_hash, self._hash_password(password or "", credential.salt)):
            logger.warning("Sign-in rejected")
            raise AuthError("Invalid login credentials", operation="sign_in", status_code=400)

        self.session = AuthSession(
            access_token=secrets.token_urlsafe(32),
            user=credential.user,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=self.session_hours)
        )
        self._notify(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_out(self) -> None:
        self.session = None
        self._notify(AuthEvent.SIGNED_OUT, None)

    async def reset_password(self, email: str) -> None:
        email = (email or "").strip().lower()
        # Unknown addresses are accepted silently so that accounts cannot be probed
        if email in self._credentials:
            self.recovery_requests.append(email)
        self._notify(AuthEvent.PASSWORD_RECOVERY, None)


class SupabaseAuthService(AuthService):
    """GoTrue REST client"""

    def __init__(self, base_url: str, anon_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 redirect_to: Optional[str] = None):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.redirect_to = redirect_to
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"apikey": anon_key}
        )

    async def _post(self, path: str, operation: str, payload: dict,
                    params: Optional[dict] = None, token: Optional[str] = None) -> dict:
        headers = {"Authorization": f"Bearer {token or self.anon_key}"}
        try:
            response = await self._client.post(path, json=payload, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{operation} failed to reach auth server: {e}")
            raise AuthError(f"Auth server unreachable: {e}", operation=operation)

        if response.status_code >= 400:
            try:
                body = response.json()
                message = body.get("error_description") or body.get("msg") or body.get("message")
            except ValueError:
                message = None
            raise AuthError(message or f"Auth server returned {response.status_code}",
                            operation=operation, status_code=response.status_code)
        return response.json() if response.content else {}

    @staticmethod
    def _user(data: dict) -> AuthUser:
        created = data.get("created_at")
        return AuthUser(
            id=str(data["id"]),
            email=data.get("email", ""),
            created_at=(datetime.fromisoformat(created.replace("Z", "+00:00"))
                        if created else datetime.now(timezone.utc))
        )

    async def sign_up(self, email: str, password: str) -> AuthUser:
        email = self._validate(email, password)
        data = await self._post("/auth/v1/signup", "sign_up", {"email": email, "password": password})
        user = self._user(data.get("user", data))
        self._notify(AuthEvent.USER_CREATED, None)
        return user

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._post(
            "/auth/v1/token", "sign_in",
            {"email": (email or "").strip().lower(), "password": password},
            params={"grant_type": "password"}
        )
        self.session = AuthSession(
            access_token=data["access_token"],
            user=self._user(data["user"]),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(data.get("expires_in", 3600)))
        )
        self._notify(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_out(self) -> None:
        if self.session is not None:
            token = self.session.access_token
            self.session = None
            await self._post("/auth/v1/logout", "sign_out", {}, token=token)
        self._notify(AuthEvent.SIGNED_OUT, None)

    async def reset_password(self, email: str) -> None:
        payload = {"email": (email or "").strip().lower()}
        params = {"redirect_to": self.redirect_to} if self.redirect_to else None
        await self._post("/auth/v1/recover", "reset_password", payload, params=params)
        self._notify(AuthEvent.PASSWORD_RECOVERY, None)

    async def close(self) -> None:
        await self._client.aclose()


def init_auth(config: LendingConfig) -> AuthService:
    """Create the auth service matching ``config.backend_type``"""
    if config.backend_type.lower() == "supabase":
        return SupabaseAuthService(config.backend_url, config.backend_anon_key,
                                   timeout=config.backend_timeout)
    return InMemoryAuthService()

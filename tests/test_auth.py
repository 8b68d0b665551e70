"""
Tests for operator authentication
"""

import json
import pytest
import httpx

from core_lending.auth import (
    AuthError, AuthEvent, InMemoryAuthService, SupabaseAuthService, init_auth
)
from core_lending.config import LendingConfig


class TestInMemoryAuth:
    """Test scrypt-backed local auth"""

    @pytest.mark.asyncio
    async def test_sign_up_and_sign_in(self):
        auth = InMemoryAuthService()
        user = await auth.sign_up("Ops@Example.com", "secret123")
        assert user.email == "ops@example.com"

        session = await auth.sign_in("ops@example.com", "secret123")
        assert session.user.id == user.id
        assert session.access_token
        assert not session.is_expired
        assert auth.current_user == user

    @pytest.mark.asyncio
    async def test_passwords_are_hashed(self):
        auth = InMemoryAuthService()
        await auth.sign_up("ops@example.com", "secret123")
        credential = auth._credentials["ops@example.com"]
        assert "secret123" not in credential.password_hash
        assert len(credential.salt) == 32

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        auth = InMemoryAuthService()
        await auth.sign_up("ops@example.com", "secret123")
        with pytest.raises(AuthError):
            await auth.sign_in("ops@example.com", "wrong-password")
        with pytest.raises(AuthError):
            await auth.sign_in("nobody@example.com", "secret123")
        assert auth.current_user is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,password", [
        ("not-an-email", "secret123"),
        ("ops@example.com", "short"),
        ("", ""),
    ])
    async def test_sign_up_validation(self, email, password):
        with pytest.raises(AuthError):
            await InMemoryAuthService().sign_up(email, password)

    @pytest.mark.asyncio
    async def test_duplicate_sign_up(self):
        auth = InMemoryAuthService()
        await auth.sign_up("ops@example.com", "secret123")
        with pytest.raises(AuthError):
            await auth.sign_up("ops@example.com", "another123")

    @pytest.mark.asyncio
    async def test_listeners(self):
        auth = InMemoryAuthService()
        events = []
        unsubscribe = auth.on_auth_state_change(lambda event, session: events.append(event))

        await auth.sign_up("ops@example.com", "secret123")
        await auth.sign_in("ops@example.com", "secret123")
        await auth.sign_out()
        unsubscribe()
        await auth.sign_in("ops@example.com", "secret123")

        assert events == [AuthEvent.USER_CREATED, AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]
        assert auth.current_user is not None

    @pytest.mark.asyncio
    async def test_listener_errors_are_contained(self):
        auth = InMemoryAuthService()

        def broken(event, session):
            raise RuntimeError("listener failed")

        auth.on_auth_state_change(broken)
        await auth.sign_up("ops@example.com", "secret123")
        session = await auth.sign_in("ops@example.com", "secret123")
        assert session is not None

    @pytest.mark.asyncio
    async def test_reset_password(self):
        auth = InMemoryAuthService()
        await auth.sign_up("ops@example.com", "secret123")
        await auth.reset_password("OPS@example.com")
        await auth.reset_password("unknown@example.com")
        assert auth.recovery_requests == ["ops@example.com"]


class TestSupabaseAuth:
    """Test the GoTrue REST client"""

    def _service(self, handler):
        return SupabaseAuthService("https://project.supabase.co", "anon-key",
                                   transport=httpx.MockTransport(handler),
                                   redirect_to="https://app.example.com/reset")

    @pytest.mark.asyncio
    async def test_sign_in(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "access_token": "jwt", "expires_in": 3600,
                "user": {"id": "u1", "email": "ops@example.com",
                         "created_at": "2024-01-01T00:00:00Z"}
            })

        auth = self._service(handler)
        tokens = []
        auth.on_auth_state_change(lambda event, session: tokens.append(session.access_token))
        session = await auth.sign_in("ops@example.com", "secret123")

        assert session.access_token == "jwt"
        assert session.user.id == "u1"
        assert tokens == ["jwt"]
        assert seen[0].url.path == "/auth/v1/token"
        assert seen[0].url.params["grant_type"] == "password"
        assert seen[0].headers["apikey"] == "anon-key"
        await auth.close()

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        def handler(request):
            return httpx.Response(400, json={"error_description": "Invalid login credentials"})

        auth = self._service(handler)
        with pytest.raises(AuthError) as exc:
            await auth.sign_in("ops@example.com", "bad")
        assert "Invalid login credentials" in str(exc.value)
        assert exc.value.status_code == 400
        await auth.close()

    @pytest.mark.asyncio
    async def test_sign_out_uses_session_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path == "/auth/v1/token":
                return httpx.Response(200, json={
                    "access_token": "jwt", "user": {"id": "u1", "email": "ops@example.com"}
                })
            return httpx.Response(204)

        auth = self._service(handler)
        await auth.sign_in("ops@example.com", "secret123")
        await auth.sign_out()

        assert seen[1].url.path == "/auth/v1/logout"
        assert seen[1].headers["Authorization"] == "Bearer jwt"
        assert auth.current_user is None
        await auth.close()

    @pytest.mark.asyncio
    async def test_reset_password_redirect(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        auth = self._service(handler)
        await auth.reset_password("ops@example.com")

        assert seen[0].url.path == "/auth/v1/recover"
        assert seen[0].url.params["redirect_to"] == "https://app.example.com/reset"
        assert json.loads(seen[0].content) == {"email": "ops@example.com"}
        await auth.close()

    @pytest.mark.asyncio
    async def test_sign_up(self):
        def handler(request):
            return httpx.Response(200, json={"id": "u2", "email": "new@example.com"})

        auth = self._service(handler)
        user = await auth.sign_up("new@example.com", "secret123")
        assert user.id == "u2"
        await auth.close()


class TestFactory:
    def test_memory(self):
        assert isinstance(init_auth(LendingConfig(backend_type="memory")), InMemoryAuthService)

    @pytest.mark.asyncio
    async def test_supabase(self):
        auth = init_auth(LendingConfig(backend_type="supabase", backend_url="https://x.supabase.co",
                                       backend_anon_key="k"))
        assert isinstance(auth, SupabaseAuthService)
        await auth.close()

"""
Lending system container and request dependencies
"""

from typing import Optional

from fastapi import HTTPException, Request

from ..accounting import AccountingManager
from ..applications import LoanRequestManager
from ..assistant import GeminiAssistant
from ..auth import AuthEvent, AuthService, AuthSession, init_auth
from ..config import LendingConfig, get_config
from ..currency import to_decimal
from ..documents import DocumentGenerator
from ..events import Subscription
from ..loans import LoanManager
from ..logging_config import get_logger, log_action
from ..models import LoanRequest
from ..outcomes import InvalidInput, BackendFailure, Unaffordable
from ..storage import BackendInterface, init_backend, dispose_backend
from ..store import DataStore

logger = get_logger("lending.api")


class LendingSystem:
    """Back office with all components initialized"""

    def __init__(self, config: LendingConfig, backend: BackendInterface,
                 auth: AuthService, documents: Optional[DocumentGenerator] = None,
                 assistant: Optional[GeminiAssistant] = None):
        self.config = config
        self.backend = backend
        self.auth = auth
        self.documents = documents or DocumentGenerator(config)
        self.assistant = assistant or GeminiAssistant.from_config(config)

        annual_rate = to_decimal(config.default_annual_interest_rate)
        self.loan_manager = LoanManager(backend, annual_rate, config.overdue_grace_days)
        self.request_manager = LoanRequestManager(backend, self.documents)
        self.accounting_manager = AccountingManager(backend, config.overdue_grace_days)

        self.store = DataStore(on_new_request=self._on_new_request)
        self._subscription: Optional[Subscription] = None
        self.auth.on_auth_state_change(self._on_auth_change)

    @classmethod
    def from_config(cls, config: Optional[LendingConfig] = None) -> 'LendingSystem':
        config = config or get_config()
        return cls(config, init_backend(config), init_auth(config))

    @property
    def started(self) -> bool:
        return self._subscription is not None

    async def start(self) -> None:
        """Subscribe to the change feed, then load the snapshot"""
        if self.started:
            return
        # Subscribe first so no change between the snapshot and the
        # subscription is lost; replaying one is harmless
        self._subscription = self.backend.feed.subscribe()
        await self.store.load_snapshot(self.backend)

    def sync(self) -> DataStore:
        """Bring the store up to date with the feed and return it"""
        if self._subscription is not None:
            self.store.catch_up(self._subscription)
        return self.store

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        await self.assistant.close()
        await self.auth.close()
        await dispose_backend(self.backend)

    def _on_new_request(self, request: LoanRequest) -> None:
        log_action(logger, "info", "New loan request received", action="new_request",
                   resource=f"request:{request.id}",
                   extra={"pending_requests": self.store.pending_request_count})

    def _on_auth_change(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        set_token = getattr(self.backend, "set_access_token", None)
        if set_token is None:
            return
        if event is AuthEvent.SIGNED_IN and session is not None:
            set_token(session.access_token)
        elif event is AuthEvent.SIGNED_OUT:
            set_token(None)


def get_lending_system(request: Request) -> LendingSystem:
    """Dependency returning the application's LendingSystem"""
    return request.app.state.system


def unwrap(result):
    """
    Value of an Ok outcome, or the HTTPException matching a failure:
    InvalidInput -> 422, missing record -> 404, other backend failures -> 502.
    """
    if result:
        return result.value
    if isinstance(result, InvalidInput):
        raise HTTPException(status_code=422, detail={"field": result.field, "reason": result.reason})
    if isinstance(result, BackendFailure):
        if result.is_not_found:
            raise HTTPException(status_code=404, detail=result.detail)
        raise HTTPException(status_code=502, detail=str(result))
    if isinstance(result, Unaffordable):
        raise HTTPException(status_code=422, detail=str(result))
    raise HTTPException(status_code=500, detail="Unexpected outcome")

from __future__ import annotations

import hmac
import logging
from typing import Optional, Protocol

from kps.domain.errors import AuthorizationError

log = logging.getLogger(__name__)

CLIENT_MODE = "client"
OPERATOR_MODE = "operator"
MODES = {CLIENT_MODE, OPERATOR_MODE}


class Authorizer(Protocol):
    def authorize(self, secret: str) -> bool: ...


class SharedSecretAuthorizer:
    """Staff check against one shared password. Not a security boundary."""

    def __init__(self, secret: str):
        self.secret = secret

    def authorize(self, secret: str) -> bool:
        return hmac.compare_digest((secret or "").strip().encode("utf-8"), self.secret.encode("utf-8"))


class ModeService:
    """Operator/client mode. Entering operator mode needs authorization,
    leaving it does not."""

    def __init__(
        self,
        store,
        authorizer: Authorizer,
        key: str = "kps_mode",
        forced_mode: str = "",
        tracker=None,
    ):
        self.store = store
        self.authorizer = authorizer
        self.key = key
        self.tracker = tracker
        self._mode = self._initial_mode(forced_mode)

    def _initial_mode(self, forced_mode: str) -> str:
        if forced_mode in MODES:
            self.store.set(self.key, forced_mode)
            return forced_mode
        saved = self.store.get(self.key)
        return saved if saved in MODES else OPERATOR_MODE

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_client_mode(self) -> bool:
        return self._mode == CLIENT_MODE

    def _set(self, mode: str) -> None:
        self._mode = mode
        self.store.set(self.key, mode)
        log.info("mode_changed mode=%s", mode)
        if self.tracker is not None:
            self.tracker.track("MODE_CHANGED", {"mode": mode})

    def switch_to_client(self) -> None:
        self._set(CLIENT_MODE)

    def switch_to_operator(self, secret: str) -> None:
        if not self.authorizer.authorize(secret):
            log.warning("mode_switch_denied")
            raise AuthorizationError("Wrong password.")
        self._set(OPERATOR_MODE)

    def toggle(self, secret: Optional[str] = None) -> str:
        if self.is_client_mode:
            self.switch_to_operator(secret or "")
        else:
            self.switch_to_client()
        return self._mode

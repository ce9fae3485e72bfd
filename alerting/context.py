"""
Context-scoped access to the alert manager.

The manager is bound to a context variable instead of a module global.
The HTTP middleware binds it for each request and the event consumer binds
it for its task, so code deep in a call chain can find the manager with
`get_manager()` while each test or app instance keeps its own.
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from alerting.alerts.manager import AlertManager


_current_manager: ContextVar[Optional["AlertManager"]] = ContextVar(
    "alert_manager", default=None
)


def set_manager(manager: Optional["AlertManager"]) -> Token:
    """Bind a manager to the current context. Returns a token for `reset_manager`."""
    return _current_manager.set(manager)


def reset_manager(token: Token) -> None:
    _current_manager.reset(token)


def get_manager() -> Optional["AlertManager"]:
    """The manager bound to the current context, or None when alerting is off."""
    return _current_manager.get()


@contextmanager
def use_manager(manager: Optional["AlertManager"]) -> Iterator[Optional["AlertManager"]]:
    """
    Bind a manager for the duration of a block.

    Usage:
        with use_manager(manager):
            await some_monitor.poll()
    """
    token = set_manager(manager)
    try:
        yield manager
    finally:
        reset_manager(token)

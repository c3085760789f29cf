"""
Request correlation ids carried through contextvars.

The context key is a module-private ContextVar; only the helpers here can
read or write it, so no other component can collide with the slot.
"""

import uuid
from contextvars import Context, ContextVar, Token, copy_context
from typing import Optional, Protocol, Tuple

_request_id: ContextVar[str] = ContextVar("request_id")


class IDProvider(Protocol):
    """Source of correlation ids."""

    def new_id(self) -> str: ...


class UUIDProvider:
    """Random UUID4 ids."""

    def new_id(self) -> str:
        return str(uuid.uuid4())


def derive_context(request_id: str, ctx: Optional[Context] = None) -> Context:
    """Copy `ctx` (or the running context) with the id set; the source is untouched."""
    derived = ctx.copy() if ctx is not None else copy_context()
    derived.run(_request_id.set, request_id)
    return derived


def get_request_id(ctx: Optional[Context] = None) -> str:
    """
    Correlation id stored in `ctx`, or in the running context when omitted.

    Returns an empty string when no id was ever set or the stored value is
    not a string.
    """
    if ctx is None:
        value = _request_id.get(None)
    else:
        value = ctx.get(_request_id)
    if isinstance(value, str):
        return value
    return ""


def bind_request_id(request_id: str) -> Token:
    """Set the id in the running context; hand the token to reset_request_id."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def new_request_context(
    provider: IDProvider, ctx: Optional[Context] = None
) -> Tuple[Context, str]:
    request_id = provider.new_id()
    return derive_context(request_id, ctx), request_id

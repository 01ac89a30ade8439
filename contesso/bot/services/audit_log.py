# bot/services/audit_log.py
from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from functools import wraps
from typing import Any, ClassVar, Iterable, Mapping, MutableMapping, Optional, Sequence
from contextvars import ContextVar, Token

from contesso.db.database import DataBase
from contesso.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from contesso.db.schemas.user import UserRead

logger = logging.getLogger(__name__)


class AuditLogService:
    """
    Stores every state-changing service call in the ``audit_log`` table.

    Payloads are normalised into JSON-friendly dictionaries and persisted through
    :class:`contesso.db.database.DataBase`. The acting user is either passed
    explicitly or taken from a ContextVar bound per bot update.
    """

    _instance: ClassVar[Optional["AuditLogService"]] = None

    def __new__(cls) -> "AuditLogService":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self._database = DataBase()
        self._logger = logging.getLogger("contesso.audit")
        self._actor_ctx: ContextVar[Optional[uuid.UUID]] = ContextVar("audit_actor", default=None)
        self._initialized = True

    async def log(
        self,
        *,
        action: str,
        actor_id: uuid.UUID | None = None,
        payload: Any | None = None,
    ) -> AuditLogRead:
        """
        Persist a low-level audit entry.

        :param action: short machine-readable label (``bookmarks.add``, ``contests.set_solution_link``...)
        :param actor_id: optional user identifier that initiated the action
        :param payload: arbitrary structure with details (will be serialised)
        """
        payload_map = self._prepare_payload(payload)
        actor_id = actor_id if actor_id is not None else self.current_actor()

        entry = await self._database.create_audit_log(
            AuditLogCreate(action=action, actor_id=actor_id, payload=payload_map)
        )
        self._logger.info(
            "AUDIT action=%s actor=%s entry=%s",
            action,
            str(actor_id) if actor_id else "-",
            entry.id,
        )
        return entry

    async def log_user_action(
        self,
        *,
        action: str,
        actor: UserRead | uuid.UUID | None,
        payload: Any | None = None,
    ) -> AuditLogRead:
        actor_id = self._actor_id(actor)
        payload_map: MutableMapping[str, Any] = {}
        if payload is not None:
            payload_map["data"] = self._serialize(payload)
        if isinstance(actor, UserRead):
            payload_map["actor"] = {
                "id": str(actor.id),
                "role": str(actor.role),
                "username": actor.tg_username,
            }
        return await self.log(action=action, actor_id=actor_id, payload=payload_map)

    # --------------
    # Actor context
    # --------------
    def bind_actor(self, actor_id: Optional[uuid.UUID]) -> Token:
        return self._actor_ctx.set(actor_id)

    def unbind_actor(self, token: Token) -> None:
        self._actor_ctx.reset(token)

    def current_actor(self) -> Optional[uuid.UUID]:
        return self._actor_ctx.get()

    def _actor_id(self, actor: UserRead | uuid.UUID | None) -> uuid.UUID | None:
        if isinstance(actor, uuid.UUID):
            return actor
        if isinstance(actor, UserRead):
            return actor.id
        return None

    def _prepare_payload(self, payload: Any | None) -> dict[str, Any]:
        if payload is None:
            return {}
        serialized = self._serialize(payload)
        if isinstance(serialized, dict):
            return dict(serialized)
        return {"value": serialized}

    def serialize(self, value: Any) -> Any:
        return self._serialize(value)

    def _serialize(self, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if is_dataclass(value) and not isinstance(value, type):
            return {k: self._serialize(v) for k, v in asdict(value).items()}
        if isinstance(value, Mapping):
            return {str(k): self._serialize(v) for k, v in value.items()}
        if isinstance(value, (set, frozenset)):
            return sorted(self._serialize(v) for v in value)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            return [self._serialize(v) for v in value]
        if hasattr(value, "model_dump"):
            return {k: self._serialize(v) for k, v in value.model_dump().items()}
        return str(value)


audit_logger = AuditLogService()

def _resolve_actor(
    actor_fields: Iterable[str] | None,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    signature: inspect.Signature,
) -> UserRead | uuid.UUID | None:
    if not actor_fields:
        return None
    for field in actor_fields:
        candidate = kwargs.get(field)
        if candidate is not None:
            return candidate
    for idx, name in enumerate(signature.parameters):
        if name in actor_fields and idx < len(args) and args[idx] is not None:
            return args[idx]
    return None


async def _emit_action(
    *,
    action: str,
    actor: UserRead | uuid.UUID | None,
    payload: dict[str, Any],
) -> None:
    # a failed audit write never replaces the audited call's outcome
    try:
        if actor is not None:
            await audit_logger.log_user_action(action=action, actor=actor, payload=payload)
        else:
            await audit_logger.log(action=action, payload=payload)
    except Exception:
        logger.exception("Failed to write audit entry %s", action)


def _wrap_async_callable(fn, action: str, *, actor_fields: Iterable[str] | None):
    if getattr(fn, "__audit_wrapped__", False):
        return fn

    signature = inspect.signature(fn)

    @wraps(fn)
    async def wrapper(*args, **kwargs):
        actor = _resolve_actor(actor_fields, args, kwargs, signature)
        if actor is None:
            actor = audit_logger.current_actor()
        payload = {
            "args": [audit_logger.serialize(a) for a in args[1:] if not isinstance(a, UserRead)],
            "kwargs": {k: audit_logger.serialize(v) for k, v in kwargs.items() if not isinstance(v, UserRead)},
        }
        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            payload["error"] = repr(exc)
            await _emit_action(action=f"{action}.error", actor=actor, payload=payload)
            raise
        payload["result"] = audit_logger.serialize(result)
        await _emit_action(action=action, actor=actor, payload=payload)
        return result

    wrapper.__audit_wrapped__ = True  # type: ignore[attr-defined]
    return wrapper


def instrument_service_class(
    cls,
    *,
    prefix: str | None = None,
    include: Iterable[str] | None = None,
    actor_fields: Iterable[str] | None = ("user", "actor"),
) -> None:
    """Wrap the named async methods of a service class so each call emits an audit entry."""
    action_prefix = prefix or cls.__name__
    names = set(include) if include is not None else {
        n for n, a in cls.__dict__.items() if not n.startswith("_") and inspect.iscoroutinefunction(a)
    }

    for name in names:
        attr = cls.__dict__.get(name)
        if attr is None or not inspect.iscoroutinefunction(attr):
            raise AttributeError(f"{cls.__name__}.{name} is not an async method")
        setattr(cls, name, _wrap_async_callable(attr, f"{action_prefix}.{name}", actor_fields=actor_fields))


__all__ = [
    "AuditLogService",
    "audit_logger",
    "instrument_service_class",
]

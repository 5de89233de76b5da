import contextvars
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class LogContext:
    request_id: str = "-"
    tenant_id: str = "-"
    actor_id: str = "-"
    actor_role: str = "-"


_context: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "portal_log_context", default=LogContext()
)


def current() -> LogContext:
    return _context.get()


def start_request(request_id: str) -> None:
    """Begin a fresh context; nothing from a previous request on this task survives."""
    _context.set(LogContext(request_id=request_id))


def bind_actor(user_id: object, role: str, org_id: object | None) -> None:
    _context.set(
        replace(
            _context.get(),
            actor_id=str(user_id),
            actor_role=role,
            tenant_id=str(org_id) if org_id is not None else "-",
        )
    )


def get_request_id() -> str:
    return _context.get().request_id

"""Jobs backend registry with lazy loading.

Usage:
    from jobsync.backends import get_backend

    backend = get_backend(Role.OPERATIONS, client, credentials)
    response = await backend.fetch_all(identity)
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

from jobsync.backends.base import ApiResponse, JobsBackend
from jobsync.core.schemas import Role

if TYPE_CHECKING:
    import httpx

    from jobsync.sync.auth_gate import CredentialProvider

__all__ = ["ApiResponse", "JobsBackend", "get_backend"]

# Lazy registry: maps role → (module_path, class_name)
_REGISTRY: dict[Role, tuple[str, str]] = {
    Role.STANDARD: ("jobsync.backends.standard", "StandardBackend"),
    Role.OPERATIONS: ("jobsync.backends.operations", "OperationsBackend"),
}


def get_backend(
    role: Role | str,
    client: httpx.AsyncClient,
    credentials: CredentialProvider | None = None,
) -> JobsBackend:
    """Instantiate the backend serving ``role``.

    Raises:
        ValueError: If the role is unknown, or a standard backend is requested
            without credentials.
    """
    try:
        role = Role(role)
    except ValueError:
        valid = ", ".join(sorted(r.value for r in _REGISTRY))
        msg = f"Unknown role '{role}'. Available: {valid}"
        raise ValueError(msg) from None

    module_path, class_name = _REGISTRY[role]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)

    if role is Role.STANDARD:
        if credentials is None:
            msg = "The standard backend requires credentials"
            raise ValueError(msg)
        return cls(client, credentials)  # type: ignore[no-any-return]
    return cls(client)  # type: ignore[no-any-return]

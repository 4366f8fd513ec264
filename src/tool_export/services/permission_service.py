"""Export permission hook.

Real authorization (roles, tool ownership, tenant isolation, quotas) lives
in the identity service; this hook is the seam where it plugs in.
"""

from collections.abc import Awaitable, Callable

PermissionHook = Callable[[str, str], bool | Awaitable[bool]]


async def can_export(user_id: str, tool_id: str) -> bool:
    """Allow any identified user to export any identified tool."""
    return bool(user_id) and bool(tool_id)

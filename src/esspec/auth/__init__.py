"""Authentication module for esspec.

Keeps the YouTube OAuth token set usable across invocations.

Usage:
    from esspec.auth import TokenManager

    manager = TokenManager()
    async with await manager.get_authenticated_client() as client:
        ...

    # Check status
    status = manager.get_status()
"""

from .manager import TokenManager

__all__ = [
    "TokenManager",
]

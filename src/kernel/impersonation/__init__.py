"""
Impersonation Core - bounded "view as" sessions.
"""

from src.kernel.impersonation.session_manager import (
    CreatedSession,
    ImpersonationManager,
    RejectionCause,
    SessionInfo,
    generate_token,
)

__all__ = [
    "CreatedSession",
    "ImpersonationManager",
    "RejectionCause",
    "SessionInfo",
    "generate_token",
]

"""控制台客户端"""
from .cache import GROUP_ACLS, USER_ACLS, QueryCache, Snapshot, apply_permission
from .client import ActiveLocksPoller, ConsoleAPIError, ConsoleClient

__all__ = [
    "GROUP_ACLS",
    "USER_ACLS",
    "QueryCache",
    "Snapshot",
    "apply_permission",
    "ConsoleClient",
    "ConsoleAPIError",
    "ActiveLocksPoller",
]

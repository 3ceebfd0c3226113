"""
Smart home fulfillment: envelope handling and intent dispatch.
"""

from .dispatcher import AuthFailure, DispatchResult, IntentDispatcher
from .registry import Registry, RepositoryRegistry

__all__ = [
    "AuthFailure",
    "DispatchResult",
    "IntentDispatcher",
    "Registry",
    "RepositoryRegistry",
]

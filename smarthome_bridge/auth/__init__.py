"""
Credentials: signed tokens and password hashing.
"""

from .passwords import hash_password, verify_password
from .tokens import TokenError, TokenService, TokenType, get_token_service

__all__ = [
    "TokenError",
    "TokenService",
    "TokenType",
    "get_token_service",
    "hash_password",
    "verify_password",
]

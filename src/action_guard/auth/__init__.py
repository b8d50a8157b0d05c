"""Auth providers and local token verification."""

from action_guard.auth.base import AuthProvider
from action_guard.auth.custom import CustomAuthProvider, custom_auth
from action_guard.auth.next_auth import NextAuthProvider, NextAuthUser
from action_guard.auth.supabase import SupabaseAuthProvider, SupabaseUser
from action_guard.auth.tokens import sign_token, verify_token

__all__ = [
    "AuthProvider",
    "CustomAuthProvider",
    "NextAuthProvider",
    "NextAuthUser",
    "SupabaseAuthProvider",
    "SupabaseUser",
    "custom_auth",
    "sign_token",
    "verify_token",
]

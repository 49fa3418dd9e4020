from .gate import AuthGate, AuthPlatform

__all__ = [
    "AuthGate",
    "AuthPlatform",
]

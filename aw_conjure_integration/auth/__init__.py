"""Auth module - secure storage of the conjure.so access token."""

from .keychain import KeychainManager

__all__ = ["KeychainManager"]

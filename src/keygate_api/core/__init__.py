"""Collaborator seams the RBAC engine depends on (tenant context, key store)."""

from .context import WorkspaceContext
from .keys import KeyStore, SqlKeyStore

__all__ = ["KeyStore", "SqlKeyStore", "WorkspaceContext"]

"""Append-only audit trail for RBAC mutations."""

from .sink import AuditEntry, AuditResource, AuditSink, SqlAuditSink, build_entry

__all__ = ["AuditEntry", "AuditResource", "AuditSink", "SqlAuditSink", "build_entry"]

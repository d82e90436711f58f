"""Audit logging package."""

from subtracker.audit.logger import AuditLogger

__all__ = ["AuditLogger"]

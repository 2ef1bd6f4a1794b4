"""Signoff: multi-approver workflow engine with an auditable decision trail."""

__version__ = "0.1.0"

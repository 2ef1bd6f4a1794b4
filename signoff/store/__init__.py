"""Transactional storage for approval requests."""

from signoff.store.base import ApprovalStore, StoreTransaction
from signoff.store.sql import SqlAlchemyApprovalStore, SqlAlchemyTransaction

__all__ = [
    "ApprovalStore",
    "StoreTransaction",
    "SqlAlchemyApprovalStore",
    "SqlAlchemyTransaction",
]

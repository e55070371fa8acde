"""SQLAlchemy-backed persistence."""
from .identity_store import SqlAlchemyIdentityStore

__all__ = ["SqlAlchemyIdentityStore"]

from .database import Database, DatabaseError, DeserializationError

__all__ = ["Database", "DatabaseError", "DeserializationError"]

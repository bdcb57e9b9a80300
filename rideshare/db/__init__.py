from rideshare.db.base_class import Base
from rideshare.db.session import Database

__all__ = ["Base", "Database"]

from authcore.db.base import Base
from authcore.db.session import build_engine, build_session_maker, init_db

__all__ = ["Base", "build_engine", "build_session_maker", "init_db"]

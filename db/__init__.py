"""数据库模块"""
from db.session import get_db, engine, AsyncSessionLocal, SessionLocal
from db import models

__all__ = ["get_db", "engine", "AsyncSessionLocal", "SessionLocal", "models"]

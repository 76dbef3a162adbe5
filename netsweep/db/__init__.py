# Database module
from .database import get_db, engine, AsyncSessionLocal, Base
from .models import ScanSession
from .history import HistorySink, SqlHistorySink

__all__ = ["get_db", "engine", "AsyncSessionLocal", "Base", "ScanSession", "HistorySink", "SqlHistorySink"]

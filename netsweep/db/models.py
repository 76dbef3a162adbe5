from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from datetime import datetime, timezone
from .database import Base


class ScanSession(Base):
    """Scan session model: the summary of one finished network scan."""

    __tablename__ = "scan_sessions"

    id = Column(Integer, primary_key=True, index=True)
    target = Column(String(100), nullable=False)
    status = Column(String(20), default="completed")  # completed, cancelled, failed
    is_success = Column(Boolean, default=False)
    total_addresses = Column(Integer, default=0)
    devices_scanned = Column(Integer, default=0)
    devices_online = Column(Integer, default=0)
    devices_offline = Column(Integer, default=0)
    summary = Column(String(255))
    details = Column(Text)
    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    def __repr__(self):
        return f"<ScanSession(id={self.id}, target={self.target}, status={self.status}, online={self.devices_online})>"

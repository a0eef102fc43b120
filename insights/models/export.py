import enum

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from insights.models.report import Base


class ExportStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ReportExport(Base):
    __tablename__ = "ReportExport"

    ExportID = Column(String(36), primary_key=True)
    UserID = Column(String(200), nullable=False, index=True)
    ReportID = Column(String(36), nullable=False, index=True)
    # Lifecycle metadata
    CreatedAt = Column(DateTime, server_default=func.now())
    LastUpdated = Column(DateTime, server_default=func.now())
    Deleted = Column(Boolean, nullable=False, default=False)
    Viewed = Column(Boolean, nullable=False, default=False)
    ViewedAt = Column(DateTime, nullable=True)
    ExpiresAt = Column(DateTime, nullable=True, index=True)
    Version = Column(Integer, nullable=False, default=1)
    Status = Column(String(16), nullable=False, default=ExportStatus.PENDING.value)
    # Job inputs
    FileName = Column(String(255), nullable=False)
    Filter = Column(JSON, nullable=False, default=dict)  # raw filter, before pattern compilation
    Columns = Column(JSON, nullable=False, default=list)  # field descriptors at initiation
    # Job outputs
    RecordCount = Column(Integer, nullable=False, default=0)
    CompletedAt = Column(DateTime, nullable=True)
    ArchiveLocation = Column(String(500), nullable=True)  # local path or s3 key
    ArchiveSize = Column(BigInteger, nullable=True)
    ErrorMessage = Column(Text, nullable=True)

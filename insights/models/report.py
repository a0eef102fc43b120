from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ReportDefinition(Base):
    """A stored report: the backing view it reads plus its display schema."""

    __tablename__ = "ReportDefinition"
    ReportID = Column(String(36), primary_key=True)
    Name = Column(String(200), nullable=False, unique=True, index=True)
    Description = Column(Text, nullable=True)
    # Backing view
    ViewName = Column(String(200), nullable=False)
    ViewDBName = Column(String(200), nullable=False)
    SourceCollection = Column(String(200), nullable=False)
    Pipeline = Column(JSON, nullable=False, default=list)
    IsCrossDB = Column(Boolean, default=False)
    # Report schema
    Fields = Column(JSON, nullable=False, default=list)  # [{key, label, type}]
    Filters = Column(JSON, nullable=False, default=list)
    Searchable = Column(JSON, nullable=False, default=list)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())

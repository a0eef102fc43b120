# Package init for insights.models
from .export import ExportStatus as ExportStatus
from .export import ReportExport as ReportExport
from .logging import AppErrorLog as AppErrorLog
from .report import Base as Base  # explicit re-export
from .report import ReportDefinition as ReportDefinition

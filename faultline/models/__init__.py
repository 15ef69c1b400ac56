"""
Database models package.

Import all models here so they register with Base.metadata.
Other modules can import from here: `from faultline.models import Project`
"""

from faultline.models.project import Project
from faultline.models.error_event import ErrorEventRecord
from faultline.models.error_group import ErrorGroupRecord, GROUP_UNIQUE_CONSTRAINT
from faultline.models.ai_cache import AICacheRecord
from faultline.models.error_document import ErrorDocument

# Export all models
__all__ = [
    "Project",
    "ErrorEventRecord",
    "ErrorGroupRecord",
    "GROUP_UNIQUE_CONSTRAINT",
    "AICacheRecord",
    "ErrorDocument",
]

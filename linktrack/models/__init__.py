"""SQLAlchemy models.

All models should be imported here for Alembic to detect them.
"""

from linktrack.core.database import Base
from linktrack.models.click import Click
from linktrack.models.link import Link

__all__ = ["Base", "Click", "Link"]

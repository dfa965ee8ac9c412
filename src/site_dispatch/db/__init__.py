from site_dispatch.db.engine import init_db, open_db
from site_dispatch.db.repository import Repository

__all__ = ["init_db", "open_db", "Repository"]

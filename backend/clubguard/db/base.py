# backend/clubguard/db/base.py

# Import every model so Base.metadata is complete for Alembic autogenerate.
from clubguard.db.base_class import Base  # noqa: F401
from clubguard.db.models.login_attempt import ClubLoginAttempt  # noqa: F401

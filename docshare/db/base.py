from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import models so Alembic can discover metadata
from docshare.models import (  # noqa: E402,F401
    access_log,
    document,
    otp_challenge,
    share,
    user,
)

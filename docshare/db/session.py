from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from docshare.core.config import get_settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine with short store timeouts so a stuck database surfaces as an error."""
    settings = get_settings()
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False, "timeout": settings.db_pool_timeout_seconds},
        )
    connect_args = {}
    if database_url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={settings.db_statement_timeout_ms}"
    elif database_url.startswith("mysql+pymysql"):
        timeout = max(1, settings.db_statement_timeout_ms // 1000)
        connect_args.update(connect_timeout=settings.db_pool_timeout_seconds, read_timeout=timeout, write_timeout=timeout)
    return create_engine(
        database_url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
        pool_timeout=settings.db_pool_timeout_seconds,
        connect_args=connect_args,
    )


_settings = get_settings()
engine = build_engine(_settings.database_url, echo=_settings.db_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

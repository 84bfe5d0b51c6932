from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlmodel import SQLModel, Session, create_engine

from config import settings

engine = create_engine(
    settings.database_url,
    echo=settings.sql_echo,
)


def create_db_and_tables() -> None:
    """Create all tables in the database if they don't exist."""
    # Table classes register themselves on SQLModel.metadata at import.
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]

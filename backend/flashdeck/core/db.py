import logging
import re
from collections.abc import Generator
from pathlib import Path

from sqlmodel import Session, SQLModel, create_engine

from .config import get_config

logger = logging.getLogger(__name__)

config = get_config()

connect_args = {"check_same_thread": False} if "sqlite" in config.database.url else {}
engine = create_engine(config.database.url, echo=False, connect_args=connect_args)


def init_db() -> None:
    # Import models to register them with SQLModel metadata
    from ..models import card, deck, review_log, settings  # noqa: F401

    if "sqlite" in config.database.url:
        match = re.search(r"sqlite:///(.+)", config.database.url)
        if match and match.group(1) != ":memory:":
            Path(match.group(1)).parent.mkdir(parents=True, exist_ok=True)

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ensured")


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def commit_or_raise(session: Session) -> None:
    """Commit, mapping store errors to the service error taxonomy."""
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError

    from .errors import Conflict, PersistenceFailure

    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise Conflict() from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Commit failed")
        raise PersistenceFailure() from exc

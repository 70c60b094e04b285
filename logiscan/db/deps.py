from collections.abc import Generator

from .session import SessionLocalLogistics


def get_db() -> Generator:
    db = SessionLocalLogistics()
    try:
        yield db
    finally:
        db.close()

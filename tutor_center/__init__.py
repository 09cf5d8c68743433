from sqlalchemy.orm import Session

from .config import settings
from .database import Base, engine
from .services.users import seed_super_admin


def init_database() -> None:
    Base.metadata.create_all(bind=engine)
    db = Session(bind=engine)
    try:
        seed_super_admin(db, email=settings.super_admin_email, password=settings.super_admin_password)
    finally:
        db.close()


__all__ = ["init_database"]

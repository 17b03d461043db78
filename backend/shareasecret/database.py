from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase

from shareasecret.config import settings


def build_engine(database_url: str, **engine_options) -> Engine:
    connect_args = dict(engine_options.pop("connect_args", {}))
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # SQLite specific
    # Bound values are identifiers and cipher text; keep them out of error messages
    return create_engine(
        database_url, connect_args=connect_args, hide_parameters=True, **engine_options
    )


engine = build_engine(settings.database_url)


class Base(DeclarativeBase):
    pass

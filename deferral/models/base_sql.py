from sqlalchemy.orm import DeclarativeBase


class BaseSQL(DeclarativeBase):
    """Metadata object for the jobs table.

    Kept separate from application models, so that ``create_all()`` and
    ``drop_all()`` only ever touch the queue's own tables.
    """

    pass

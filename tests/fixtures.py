import logging

import pytest
from sqlalchemy import create_engine

from deferral import Deferral, JobQueue
from . import targets


@pytest.fixture
def queue_sqlite():
    logging.getLogger("deferral").setLevel(logging.DEBUG)

    engine = create_engine("sqlite:///:memory:")
    instance = JobQueue(engine)
    instance.create_all()
    return instance


@pytest.fixture
def app():
    logging.getLogger("deferral").setLevel(logging.DEBUG)

    engine = create_engine("sqlite:///:memory:")
    instance = Deferral(engine)
    instance.create_all()
    targets.ModelBase.metadata.create_all(engine)

    for cls in (targets.MyModel, targets.UserMailer, targets.SomeClass):
        instance.register(cls)

    targets.calls.clear()
    targets.deliveries.clear()
    return instance


@pytest.fixture
def queue_psycopg2(postgres_dsn):
    logging.getLogger("deferral").setLevel(logging.DEBUG)

    instance = JobQueue(postgres_dsn)
    try:
        instance.create_all()
        yield instance
    finally:
        instance.drop_all()

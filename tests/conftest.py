import pytest


def pytest_addoption(parser):
    """Add command-line options for configuring database connections."""
    parser.addoption(
        "--postgres-dsn",
        action="store",
        default=None,
        help="PostgreSQL DSN to run the queue tests against (psycopg2)",
    )


@pytest.fixture(scope="session")
def postgres_dsn(request) -> str:
    """Provide the PostgreSQL DSN, skip the test when none is given."""
    dsn = request.config.getoption("--postgres-dsn")
    if not dsn:
        pytest.skip("--postgres-dsn not given")
    return dsn

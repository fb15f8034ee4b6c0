import os, sys, pytest
# Make the backend directory importable when running pytest from the repo root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from ndtravel import create_app, get_db
from ndtravel.models.authz import Base
import ndtravel.models.audit  # noqa: F401


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'TESTING': True})
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture(autouse=True)
def clean_tables(app_instance):
    """Every test starts from empty tables on the shared in-memory database."""
    session = get_db()
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.expunge_all()
    yield


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def session(app_instance):
    return get_db()

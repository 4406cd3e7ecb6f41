import os, sys, pytest
# Ensure project root is on path so 'medspa' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from medspa import create_app, get_db
from medspa.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import medspa.models.client  # noqa: F401
import medspa.models.appointment  # noqa: F401
import medspa.models.payment  # noqa: F401
import medspa.models.audit  # noqa: F401
from tests.test_lifecycle_helpers import FakeGateway, WEBHOOK_SECRET, jwt_headers


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'STRIPE_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'COMMISSION_RATE': '20',
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def gateway(app_instance):
    fake = FakeGateway()
    app_instance.extensions['payment_gateway'] = fake
    return fake


@pytest.fixture()
def client(app_instance, gateway):
    return app_instance.test_client()


@pytest.fixture()
def headers_for(app_instance):
    def make(user):
        with app_instance.app_context():
            return jwt_headers(user.id, user.role)
    return make

"""
Shared fixtures: a SQLite database file per test, a scripted content
generator and a renderer that writes fake PDF bytes instead of calling
WeasyPrint.
"""
import hashlib
import hmac
import time
import threading
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from letterdesk.auth import create_access_token, hash_password
from letterdesk.config import Settings
from letterdesk.database import Database
from letterdesk.errors import GenerationError
from letterdesk.models.db_models import BillingCycle, SubscriptionPlanDB, UserRole
from letterdesk.services.accounts import AccountStore
from letterdesk.services.content_generation import GeneratedContent
from letterdesk.services.document_renderer import DocumentRenderer


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeGenerator:
    """Returns canned content, or raises while ``fail`` is set."""

    def __init__(self, content="Dear Sir or Madam,\n\nPlease remit payment.\n\nRegards", summary="Demand for payment"):
        self.content = content
        self.summary = summary
        self.fail = False
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self, prompt):
        with self._lock:
            self.calls += 1
        if self.fail:
            raise GenerationError("Content generation timed out")
        return GeneratedContent(content=self.content, summary=self.summary)


class FakeRenderer(DocumentRenderer):
    """Writes deterministic placeholder bytes in place of a real PDF."""

    def __init__(self, output_dir):
        super().__init__(output_dir)
        self.fail = False
        self.rendered = []

    def write_pdf(self, html_string, path):
        if self.fail:
            raise OSError("renderer crashed")
        digest = hashlib.sha256(html_string.encode("utf-8")).hexdigest()
        path.write_bytes(b"%PDF-1.4\n% fake " + digest.encode("ascii") + b"\n")
        self.rendered.append(path.name)


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        session_secret="test-session-secret",
        database_url=f"sqlite:///{tmp_path / 'letterdesk.db'}",
        pdf_output_dir=str(tmp_path / "pdfs"),
        internal_api_key="internal-test-key",
        generation_workers=2,
    )


@pytest.fixture
def database(settings):
    database = Database(settings.database_url)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return AccountStore(db)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def renderer(settings):
    return FakeRenderer(settings.pdf_output_dir)


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db, store):
    def _make_user(role=UserRole.USER, full_name="Jane Doe", email=None, password="password123"):
        user = store.create_user(
            email=email or f"{uuid4().hex[:10]}@example.com",
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
        )
        db.commit()
        return user
    return _make_user


@pytest.fixture
def make_plan(db):
    def _make_plan(letters=1, price="299.00", billing_cycle=BillingCycle.ONE_TIME):
        plan = SubscriptionPlanDB(
            id=str(uuid4()),
            name=f"{letters}-letter plan",
            letter_count=letters,
            price=Decimal(price),
            billing_cycle=billing_cycle,
            is_active=True,
            features=[],
        )
        db.add(plan)
        db.commit()
        return plan
    return _make_plan


@pytest.fixture
def make_subscription(db, store, make_plan):
    def _make_subscription(user, letters=1):
        plan = make_plan(letters=letters)
        price = Decimal(plan.price)
        subscription = store.create_subscription(user.id, plan, price, Decimal("0.00"), price)
        db.commit()
        return subscription
    return _make_subscription


@pytest.fixture
def auth_headers(settings):
    def _auth_headers(user):
        token = create_access_token(user.id, settings.session_secret)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


def letter_payload(**overrides):
    payload = {
        "sender_name": "Jane Doe",
        "sender_firm_name": "Doe & Partners",
        "sender_address": {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701"},
        "recipient_name": "Acme Corp",
        "recipient_address": {"street": "9 Market St", "city": "Chicago", "state": "IL", "zip": "60601"},
        "subject": "Unpaid invoice #1042",
        "conflict_description": "Invoice 1042 for $4,500 is 90 days overdue.",
        "desired_resolution": "Payment in full within 14 days.",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def letter_data():
    return letter_payload


# =============================================================================
# APPLICATION
# =============================================================================

@pytest.fixture
def services(settings, database, generator, renderer):
    from letterdesk.services.container import build_services
    return build_services(settings, database=database, content_generator=generator, renderer=renderer)


@pytest.fixture
def client(services):
    from letterdesk.main import create_app
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client


# =============================================================================
# PAYMENTS
# =============================================================================

WEBHOOK_SECRET = "whsec_test_secret"


def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """``Stripe-Signature`` header value for ``payload``, as Stripe computes it."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def paid_services(settings, database, generator, renderer):
    from letterdesk.services.container import build_services
    from letterdesk.services.payments import PaymentGateway
    return build_services(
        settings,
        database=database,
        content_generator=generator,
        renderer=renderer,
        payment_gateway=PaymentGateway("sk_test", WEBHOOK_SECRET),
    )


@pytest.fixture
def paid_client(paid_services):
    from letterdesk.main import create_app
    with TestClient(create_app(services=paid_services)) as test_client:
        yield test_client


@pytest.fixture
def sign_webhook():
    return stripe_signature

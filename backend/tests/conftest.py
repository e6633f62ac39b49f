import pytest
from unittest.mock import patch, MagicMock
from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from base import Base
from routes.cart import cart_bp
from routes.auth import auth_bp
from routes.products import products_bp
from routes.orders import orders_bp
from routes.wishlist import wishlist_bp
import schema


@pytest.fixture(autouse=True)
def _stub_razorpay():
    """Mock RazorpayGateway globally so no real payment API calls are made."""
    mock_gateway = MagicMock()
    mock_gateway.key_id = "rzp_test_key"
    mock_gateway.create_order.return_value = {"id": "order_TEST123", "currency": "INR", "status": "created"}
    mock_gateway.verify_payment.return_value = None

    with patch("routes.orders.RazorpayGateway", return_value=mock_gateway):
        yield mock_gateway


@pytest.fixture
def engine():
    """In-memory SQLite DB for fast testing."""
    _engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(_engine)
    yield _engine
    Base.metadata.drop_all(_engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def get_test_db(session_factory):
    """A get_db replacement bound to the in-memory engine."""
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()
    return _get_db


@pytest.fixture
def db_session(session_factory):
    """Provides a transactional database session."""
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def app(session_factory):
    """Provides a pre-configured Flask app with all blueprints and mocked db."""
    flask_app = Flask(__name__)
    flask_app.secret_key = "test-secret"
    flask_app.register_blueprint(cart_bp, url_prefix="/api/v1")
    flask_app.register_blueprint(auth_bp, url_prefix="/api/v1")
    flask_app.register_blueprint(products_bp, url_prefix="/api/v1")
    flask_app.register_blueprint(orders_bp, url_prefix="/api/v1")
    flask_app.register_blueprint(wishlist_bp, url_prefix="/api/v1")
    flask_app.config["TESTING"] = True

    with patch("db.SessionLocal", session_factory):
        yield flask_app


@pytest.fixture
def client(app):
    """Provides a Flask test client."""
    return app.test_client()

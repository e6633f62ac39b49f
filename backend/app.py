import os
import logging
from typing import Any
from dotenv import load_dotenv

# Initialize environment configuration from local or project-level .env files
dotenv_paths = [
    os.path.join(os.path.dirname(__file__), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'),
    os.path.join(os.path.dirname(__file__), '.env.example')
]

for path in dotenv_paths:
    if os.path.exists(path):
        load_dotenv(path)
        break

from flask import Flask, jsonify
from flask_cors import CORS
from config import config
from db import init_db
from routes.cart import cart_bp
from routes.auth import auth_bp
from routes.products import products_bp
from routes.orders import orders_bp
from routes.wishlist import wishlist_bp

# Configure high-level logging defaults for the backend application
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY
CORS(app, supports_credentials=True)

app.register_blueprint(cart_bp, url_prefix="/api/v1")
app.register_blueprint(auth_bp, url_prefix="/api/v1")
app.register_blueprint(products_bp, url_prefix="/api/v1")
app.register_blueprint(orders_bp, url_prefix="/api/v1")
app.register_blueprint(wishlist_bp, url_prefix="/api/v1")


@app.route("/api/v1/health")
def health() -> Any:
    """
    Verifies the operational status of the Flask application.

    Returns:
        A JSON response indicating the service is healthy.
    """
    return jsonify({"status": "ok"})


if __name__ == "__main__":
    # Ensure the database schema is initialized before accepting requests
    init_db()
    if config.CART_BACKEND not in ("sql", "supabase"):
        raise RuntimeError(f"Unknown CART_BACKEND {config.CART_BACKEND!r}; expected 'sql' or 'supabase'")

    app.run(port=8000, debug=True)

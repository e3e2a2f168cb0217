"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from fieldservice_authz.api.routes import register_routes
from fieldservice_authz.config import TOKEN_EXPIRY_HOURS, configure_logging
from fieldservice_authz.database import init_engine
from fieldservice_authz.metadata import ENTITY_METADATA
from fieldservice_authz.permissions import load_config, validate_against


def create_app(engine=None, config=None, registry=ENTITY_METADATA):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if config is None:
            print("[init] Loading permission data...")
            config = load_config()
        validate_against(config, registry)

        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()

        print("[init] ✓ API server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    app.config["AUTHZ_CONFIG"] = config

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, engine, config, registry)

    return app


def main():
    """Run the development server."""
    configure_logging()
    print("=" * 60)
    print("Field Service API – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Token expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - GET    http://{host}:{port}/api/v2/<entity>")
    print(f"  - POST   http://{host}:{port}/api/v2/<entity>")
    print(f"  - GET    http://{host}:{port}/api/v2/<entity>/<id>")
    print(f"  - PATCH  http://{host}:{port}/api/v2/<entity>/<id>")
    print(f"  - DELETE http://{host}:{port}/api/v2/<entity>/<id>")
    print(f"  - GET    http://{host}:{port}/api/user/profile")
    print(f"  - GET    http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()

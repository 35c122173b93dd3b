"""Unit tests for LinkDesk web route modules.

Structure:
    tests/unit/web/
    ├── test_auth.py             # Session storage and user dependencies
    ├── test_routes_orders.py    # Confirmation, line items, share management
    ├── test_routes_share.py     # Public claim view and signup
    ├── test_routes_admin.py     # Repairs, migrations, streams
    └── test_routes_health.py    # Database and session store liveness

Testing pattern:
    - Use FastAPI's TestClient for route testing
    - Patch get_session and the service call under test
    - Test auth requirements and error mapping
"""

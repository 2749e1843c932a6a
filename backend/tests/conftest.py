"""
Pytest fixtures for the stock ledger backend tests.

Every test gets a fresh application with three in-memory SQLite stores
(catalog, purchases, sales). file_app builds the same thing on files in a
temporary directory for tests that need several connections (threads).
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import stock_service


def _build_app(catalog_uri, purchases_uri, sales_uri, **extra):
    overrides = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': catalog_uri,
        'SQLALCHEMY_BINDS': {
            'purchases': purchases_uri,
            'sales': sales_uri,
        },
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    }
    overrides.update(extra)
    return create_app(overrides)


@pytest.fixture(scope='function')
def app():
    """Application with in-memory stores, inside an app context."""
    app = _build_app('sqlite:///:memory:', 'sqlite:///:memory:', 'sqlite:///:memory:')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """Application with file-backed stores (needed for multi-threaded tests)."""
    app = _build_app(
        f"sqlite:///{tmp_path / 'inventory.sqlite3'}",
        f"sqlite:///{tmp_path / 'purchases.sqlite3'}",
        f"sqlite:///{tmp_path / 'sales.sqlite3'}",
        SQLITE_BUSY_TIMEOUT_SECONDS=30.0,
        SQLALCHEMY_ENGINE_OPTIONS={'connect_args': {'check_same_thread': False}},
    )
    yield app
    with app.app_context():
        db.session.remove()
        for engine in db.engines.values():
            engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def make_product(app):
    """Factory: create a catalog product with sensible defaults."""
    def _make(**fields):
        payload = {
            'itemCode': 'P1',
            'itemName': 'Paracetamol 500',
            'batch': 'B1',
            'stockQuantity': 20,
            'rol': 5,
            'purchasePrice': 8,
            'sellingPriceTab': 10,
            'mrp': 12,
            'cgstRate': 6,
            'sgstRate': 6,
        }
        payload.update(fields)
        return stock_service.upsert_product(payload)
    return _make


@pytest.fixture(scope='function')
def purchase_payload():
    """A two-line purchase invoice as the purchase entry screen sends it."""
    return {
        'invoiceNo': 'INV-1',
        'header': {'invoiceDate': '2024-03-01', 'dueDate': '2024-03-31', 'lrNo': 'LR-9'},
        'party': {'name': 'Acme Pharma Distributors', 'gstin': '29ABCDE1234F1Z5', 'state': 'Karnataka'},
        'items': [
            {
                'slNo': 1, 'itemCode': 'P1', 'productName': 'Paracetamol 500', 'batch': 'B1',
                'qty': 10, 'free': 1, 'rate': 100, 'dis': 10, 'cgst': 6, 'sgst': 6, 'mrp': 150,
            },
            {
                'slNo': 2, 'itemCode': 'C7', 'productName': 'Cough Syrup', 'batch': 'CS-22',
                'qty': 4, 'free': 0, 'rate': 50, 'dis': 0, 'cgst': 9, 'sgst': 9, 'mrp': 80,
            },
        ],
        'totals': {
            'totalQty': 14, 'totalFree': 1,
            'cgst': 72.0, 'sgst': 72.0, 'totalGST': 144.0, 'total': 1244.0,
        },
    }

# Overview: Pytest coverage for the stock ledger service.

"""
Stock Ledger Tests

Covers:
1. Product upsert / update: alias derivation, defaults, key uniqueness
2. Stock adjustment by (code, batch): clamping, normalization, unknown keys
3. Aggregate reads: low stock, out of stock, expiring, expired, stats
4. Cross-field search
5. Bulk add, export and all-or-nothing import
"""

import json
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from stockledger.errors import DuplicateKeyError, ValidationError
from stockledger.models import Product
from stockledger.services import stock_service


class TestProductUpsert:
    """Catalog entry and edits."""

    def test_aliases_are_derived_not_trusted(self, app):
        """productCode / productName / sellingPrice always mirror the canonical fields."""
        product = stock_service.upsert_product({
            'itemCode': 'A1',
            'itemName': 'Amoxicillin',
            'sellingPriceTab': 42.5,
            'productCode': 'WRONG',
            'productName': 'WRONG',
            'sellingPrice': 1,
        })

        assert product['productCode'] == 'A1'
        assert product['productName'] == 'Amoxicillin'
        assert product['sellingPrice'] == 42.5

        updated = stock_service.update_product(product['id'], {'itemName': 'Amoxicillin 250', 'sellingPrice': 3})
        assert updated['productName'] == 'Amoxicillin 250'
        assert updated['sellingPrice'] == 42.5

    def test_min_stock_level_defaults_to_rol(self, app):
        """A new product without minStockLevel takes its reorder level."""
        product = stock_service.upsert_product({'itemCode': 'A2', 'itemName': 'Azithral', 'rol': 7})
        assert product['minStockLevel'] == 7

    def test_missing_required_fields_rejected(self, app):
        """itemCode and itemName are mandatory on create."""
        with pytest.raises(ValidationError):
            stock_service.upsert_product({'itemName': 'No code'})
        with pytest.raises(ValidationError):
            stock_service.upsert_product({'itemCode': 'X', 'itemName': '   '})

    def test_negative_stock_rejected(self, app):
        with pytest.raises(ValidationError):
            stock_service.upsert_product({'itemCode': 'N', 'itemName': 'Neg', 'stockQuantity': -1})

    def test_upsert_with_existing_id_replaces(self, app, make_product):
        """Supplying an existing id updates that row instead of creating another."""
        product = make_product()
        replaced = stock_service.upsert_product({
            'id': product['id'], 'itemCode': 'P1', 'itemName': 'Paracetamol 650', 'batch': 'B1',
        })

        assert replaced['id'] == product['id']
        assert replaced['itemName'] == 'Paracetamol 650'
        assert replaced['createdAt'] == product['createdAt']
        assert len(stock_service.list_products()) == 1

    def test_duplicate_code_batch_rejected(self, app, make_product):
        """(itemCode, batch) is unique, compared case-insensitively after trimming."""
        make_product(itemCode='P1', batch='B1')

        with pytest.raises(DuplicateKeyError):
            make_product(itemCode=' p1 ', batch='b1')

    def test_same_code_different_batch_allowed(self, app, make_product):
        make_product(itemCode='P1', batch='B1')
        make_product(itemCode='P1', batch='B2')
        assert len(stock_service.list_products()) == 2

    @pytest.mark.parametrize('price', ['nan', 'Infinity', '-inf', float('nan'), float('inf')])
    def test_non_finite_price_rejected(self, app, price):
        """NaN and infinities are malformed input, not a key collision."""
        with pytest.raises(ValidationError):
            stock_service.upsert_product({'itemCode': 'F1', 'itemName': 'Folic', 'purchasePrice': price})
        assert stock_service.list_products() == []

    def test_non_finite_patch_rejected(self, app, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            stock_service.update_product(product['id'], {'mrp': 'Infinity'})
        assert stock_service.get_product(product['id'])['mrp'] == 12

    def test_only_key_violations_are_duplicates(self, app):
        """A unique (code, batch) violation is DuplicateKey; other store rejections are validation failures."""
        unique = IntegrityError(
            'INSERT INTO products', {}, Exception('UNIQUE constraint failed: products.code_key, products.batch_key')
        )
        not_null = IntegrityError(
            'INSERT INTO products', {}, Exception('NOT NULL constraint failed: products.purchase_price')
        )

        assert isinstance(stock_service._integrity_failure(unique, 'dup'), DuplicateKeyError)
        failure = stock_service._integrity_failure(not_null, 'dup')
        assert type(failure) is ValidationError
        assert 'purchase_price' in str(failure)

    def test_bulk_add_key_repeated_within_batch_is_duplicate(self, app):
        with pytest.raises(DuplicateKeyError):
            stock_service.bulk_add_products([
                {'itemCode': 'D1', 'itemName': 'One', 'batch': 'X'},
                {'itemCode': 'd1', 'itemName': 'Two', 'batch': 'x'},
            ])
        assert stock_service.list_products() == []

    def test_update_unknown_product_returns_none(self, app):
        """A missing product is a not-found result, not an exception."""
        assert stock_service.update_product('PROD-missing', {'itemName': 'x'}) is None

    def test_delete_product(self, app, make_product):
        product = make_product()
        assert stock_service.delete_product(product['id']) is True
        assert stock_service.get_product(product['id']) is None
        assert stock_service.delete_product(product['id']) is False


class TestAdjustStock:
    """Atomic stock mutation by (code, batch)."""

    def test_decrease_clamps_at_zero(self, app, make_product):
        """Removing 25 from 20 leaves 0, reported as success."""
        make_product(itemCode='P1', batch='B1', stockQuantity=20, rol=5)

        result = stock_service.adjust_stock_by_code_batch('P1', 'B1', 25, 'decrease')

        assert result['success'] is True
        assert result['newStock'] == 0
        assert result['itemName'] == 'Paracetamol 500'

    def test_two_decrements_never_go_negative(self, app, make_product):
        make_product(stockQuantity=10)

        first = stock_service.adjust_stock_by_code_batch('P1', 'B1', 5, 'decrease')
        second = stock_service.adjust_stock_by_code_batch('P1', 'B1', 5, 'decrease')
        third = stock_service.adjust_stock_by_code_batch('P1', 'B1', 5, 'decrease')

        assert first['newStock'] == 5
        assert second['newStock'] == 0
        assert third['newStock'] == 0

    def test_increase_adds(self, app, make_product):
        make_product(stockQuantity=3)
        result = stock_service.adjust_stock_by_code_batch('P1', 'B1', 4, 'increase')
        assert result == {'success': True, 'newStock': 7, 'itemName': 'Paracetamol 500', 'productId': result['productId']}

    def test_key_is_case_insensitive_and_trimmed(self, app, make_product):
        make_product(itemCode='P1', batch='B1', stockQuantity=10)
        result = stock_service.adjust_stock_by_code_batch('  p1', 'b1 ', 1, 'decrease')
        assert result['success'] is True
        assert result['newStock'] == 9

    def test_empty_and_missing_batch_are_the_same_key(self, app, make_product):
        make_product(itemCode='NB', batch=None, stockQuantity=2)

        assert stock_service.adjust_stock_by_code_batch('NB', '', 1, 'increase')['newStock'] == 3
        assert stock_service.adjust_stock_by_code_batch('NB', None, 1, 'increase')['newStock'] == 4

    def test_unknown_key_reports_failure_without_mutation(self, app, make_product):
        make_product(stockQuantity=10)

        result = stock_service.adjust_stock_by_code_batch('P1', 'OTHER', 3, 'decrease')

        assert result == {'success': False, 'newStock': 0, 'itemName': ''}
        assert stock_service.get_stock_by_code_batch('P1', 'B1')['stock'] == 10

    @pytest.mark.parametrize('qty', [0, -2, 1.5, 'abc', None])
    def test_non_positive_or_malformed_qty_rejected(self, app, make_product, qty):
        make_product()
        with pytest.raises(ValidationError):
            stock_service.adjust_stock_by_code_batch('P1', 'B1', qty, 'decrease')

    def test_reject_policy_reports_insufficient_stock(self, app, make_product):
        """With STOCK_DECREMENT_POLICY=reject an over-decrement changes nothing."""
        app.config['STOCK_DECREMENT_POLICY'] = 'reject'
        make_product(stockQuantity=4)

        with pytest.raises(ValidationError) as exc:
            stock_service.adjust_stock_by_code_batch('P1', 'B1', 5, 'decrease')

        assert exc.value.details['available'] == 4
        assert stock_service.get_stock_by_code_batch('P1', 'B1')['stock'] == 4
        assert stock_service.adjust_stock_by_code_batch('P1', 'B1', 4, 'decrease')['newStock'] == 0

    def test_update_stock_by_id(self, app, make_product):
        product = make_product(stockQuantity=5)

        assert stock_service.update_stock(product['id'], 3, 'add')['stockQuantity'] == 8
        assert stock_service.update_stock(product['id'], 20, 'subtract')['stockQuantity'] == 0
        assert stock_service.update_stock('PROD-missing', 1, 'add') is None

    def test_get_stock_by_code_batch_missing(self, app):
        assert stock_service.get_stock_by_code_batch('nope', None) == {'id': '', 'stock': 0}


class TestAggregates:
    """Low stock, expiry and statistics."""

    def test_low_and_out_of_stock(self, app, make_product):
        make_product(itemCode='L', itemName='Low', batch='1', stockQuantity=3, rol=5)
        make_product(itemCode='E', itemName='Edge', batch='1', stockQuantity=5, rol=5)
        make_product(itemCode='O', itemName='Out', batch='1', stockQuantity=0, rol=5)
        make_product(itemCode='H', itemName='High', batch='1', stockQuantity=50, rol=5)

        low = [p['itemCode'] for p in stock_service.low_stock_products()]
        out = [p['itemCode'] for p in stock_service.out_of_stock_products()]

        assert low == ['E', 'L']
        assert out == ['O']

    def test_expiring_and_expired(self, app, make_product):
        as_of = date(2024, 6, 1)
        make_product(itemCode='X1', batch='1', hasExpiryDate=True, expiryDate='2024-05-31')
        make_product(itemCode='X2', batch='1', hasExpiryDate=True, expiryDate='2024-06-01')
        make_product(itemCode='X3', batch='1', hasExpiryDate=True, expiryDate='2024-07-01')
        make_product(itemCode='X4', batch='1', hasExpiryDate=True, expiryDate='2024-07-02')
        make_product(itemCode='X5', batch='1', hasExpiryDate=False, expiryDate='2024-06-10')

        expiring = [p['itemCode'] for p in stock_service.expiring_products(30, as_of=as_of)]
        expired = [p['itemCode'] for p in stock_service.expired_products(as_of=as_of)]

        assert expiring == ['X2', 'X3']
        assert expired == ['X1']

    def test_stats(self, app, make_product):
        make_product(itemCode='S1', batch='1', category='Tablets', stockQuantity=10,
                     purchasePrice=8, sellingPriceTab=10, mrp=12, rol=2)
        make_product(itemCode='S2', batch='1', category='Syrups', stockQuantity=0, rol=2)
        make_product(itemCode='S3', batch='1', category='tablets', stockQuantity=1,
                     purchasePrice=1.5, sellingPriceTab=2.25, mrp=3, rol=2)

        stats = stock_service.inventory_stats(as_of=date(2024, 1, 1))

        assert stats['totalProducts'] == 3
        assert stats['totalQuantity'] == 11
        assert stats['totalStockValue'] == 102.25
        assert stats['totalCostValue'] == 81.5
        assert stats['totalMRPValue'] == 123.0
        assert stats['lowStockCount'] == 1
        assert stats['outOfStockCount'] == 1
        assert stats['categoriesCount'] == 3
        assert stock_service.stock_value() == 81.5

    def test_categories_and_filters(self, app, make_product):
        make_product(itemCode='C1', batch='1', category='Tablets', manufacturer='Cipla', prTaxIncluded=True)
        make_product(itemCode='C2', batch='2', category='Syrups', manufacturer='Sun', slTaxIncluded=True)

        assert stock_service.unique_categories() == ['Syrups', 'Tablets']
        assert [p['itemCode'] for p in stock_service.products_by_category('tablets')] == ['C1']
        assert [p['itemCode'] for p in stock_service.products_by_manufacturer('SUN')] == ['C2']
        assert [p['itemCode'] for p in stock_service.products_by_batch('2')] == ['C2']
        assert [p['itemCode'] for p in stock_service.products_with_tax_included('purchase')] == ['C1']
        assert [p['itemCode'] for p in stock_service.products_with_tax_included('selling')] == ['C2']


class TestSearch:
    """Case-insensitive substring search across text columns."""

    def test_batch_only_match_is_found(self, app, make_product):
        make_product(itemCode='Z9', itemName='Zinc', batch='LOT-7781')
        make_product(itemCode='Q1', itemName='Quinine', batch='A1')

        hits = stock_service.search_products('7781')

        assert [p['itemCode'] for p in hits] == ['Z9']

    def test_matches_any_search_column(self, app, make_product):
        make_product(itemCode='R1', itemName='Ranitidine', batch='1', regionalName='रैनिटिडिन',
                     shortKey='rnt', barcode='8901234', hsnCode='3004')

        for term in ('RANI', 'रैनि', 'RNT', '8901', '3004', 'r1'):
            assert len(stock_service.search_products(term)) == 1, term

    def test_results_ordered_by_name(self, app, make_product):
        make_product(itemCode='B', itemName='beta', batch='x')
        make_product(itemCode='A', itemName='Alpha', batch='x')
        assert [p['itemName'] for p in stock_service.search_products('x')] == ['Alpha', 'beta']

    def test_like_wildcards_are_literal(self, app, make_product):
        make_product(itemCode='W', itemName='Plain', batch='1')
        assert stock_service.search_products('%') == []


class TestBulk:
    """Bulk add, export and import."""

    def test_bulk_add_is_all_or_nothing(self, app):
        with pytest.raises(ValidationError):
            stock_service.bulk_add_products([
                {'itemCode': 'G1', 'itemName': 'Good'},
                {'itemCode': 'G2'},
            ])
        assert stock_service.list_products() == []

        created = stock_service.bulk_add_products([
            {'itemCode': 'G1', 'itemName': 'Good'},
            {'itemCode': 'G2', 'itemName': 'Also good'},
        ])
        assert len(created) == 2

    def test_export_import_restores_catalog(self, app, make_product):
        original = make_product(stockQuantity=17, expiryDate='2025-01-31', hasExpiryDate=True)
        exported = stock_service.export_products()

        stock_service.update_product(original['id'], {'stockQuantity': 1, 'itemName': 'Changed'})
        result = stock_service.import_products(exported)

        assert result == {'success': True, 'imported': 1}
        restored = stock_service.get_product(original['id'])
        assert restored['stockQuantity'] == 17
        assert restored['itemName'] == 'Paracetamol 500'
        assert restored['expiryDate'] == '2025-01-31'

    @pytest.mark.parametrize('payload', [
        'not json',
        '{"itemCode": "x"}',
        '[1, 2]',
        json.dumps([{'id': 'PROD-a', 'itemCode': 'A', 'itemName': 'ok'}, {'id': 'PROD-b', 'itemName': 'no code'}]),
    ])
    def test_malformed_import_applies_nothing(self, app, make_product, payload):
        make_product()
        before = stock_service.export_products()

        with pytest.raises(ValidationError):
            stock_service.import_products(payload)

        assert stock_service.export_products() == before

    def test_clear_all(self, app, make_product):
        make_product(itemCode='1')
        make_product(itemCode='2')
        assert stock_service.clear_all_products() == 2
        assert Product.query.count() == 0

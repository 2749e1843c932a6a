# Overview: Pytest coverage for the JSON HTTP surface.

"""
Route Tests

Exercises each blueprint through the Flask test client: status codes,
{"error", "code"} failure bodies, and the happy paths end to end.
"""

import json


def _product(client, **fields):
    payload = {'itemCode': 'P1', 'itemName': 'Paracetamol 500', 'batch': 'B1', 'stockQuantity': 20, 'rol': 5}
    payload.update(fields)
    resp = client.post('/api/stock/products', json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


class TestSystemRoutes:

    def test_health_reports_every_store(self, client):
        resp = client.get('/api/system/health')

        assert resp.status_code == 200
        body = resp.get_json()
        assert body['status'] == 'healthy'
        assert set(body['checks']) == {'catalog', 'purchases', 'sales'}


class TestStockRoutes:

    def test_adjust_clamps(self, client):
        _product(client)

        resp = client.post('/api/stock/adjust', json={'code': 'P1', 'batch': 'B1', 'qty': 25, 'direction': 'decrease'})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body['success'] is True
        assert body['newStock'] == 0

    def test_adjust_unknown_key_is_structured_failure(self, client):
        resp = client.post('/api/stock/adjust', json={'code': 'NOPE', 'qty': 1, 'direction': 'increase'})
        assert resp.status_code == 200
        assert resp.get_json()['success'] is False

    def test_adjust_validation(self, client):
        resp = client.post('/api/stock/adjust', json={'code': 'P1', 'qty': 0, 'direction': 'decrease'})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_FAILURE'

        resp = client.post('/api/stock/adjust', json={'code': 'P1', 'qty': 1, 'direction': 'sideways'})
        assert resp.status_code == 400

    def test_product_crud(self, client):
        created = _product(client)

        resp = client.patch(f"/api/stock/products/{created['id']}", json={'mrp': 15})
        assert resp.status_code == 200
        assert resp.get_json()['mrp'] == 15

        assert client.get(f"/api/stock/products/{created['id']}").status_code == 200
        assert client.get('/api/stock/products/by-code/p1').get_json()['id'] == created['id']
        assert client.delete(f"/api/stock/products/{created['id']}").status_code == 200

        resp = client.get(f"/api/stock/products/{created['id']}")
        assert resp.status_code == 404
        assert resp.get_json()['code'] == 'NOT_FOUND'
        assert client.patch(f"/api/stock/products/{created['id']}", json={'mrp': 1}).status_code == 404

    def test_duplicate_key_conflict(self, client):
        _product(client)
        resp = client.post('/api/stock/products', json={'itemCode': 'p1', 'itemName': 'Again', 'batch': 'b1'})
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'DUPLICATE_KEY'

    def test_stats_and_lists(self, client):
        _product(client, stockQuantity=3)
        _product(client, itemCode='O1', batch='X', stockQuantity=0)

        stats = client.get('/api/stock/stats').get_json()
        assert stats['totalProducts'] == 2
        assert stats['lowStockCount'] == 1
        assert stats['outOfStockCount'] == 1

        assert len(client.get('/api/stock/low-stock').get_json()['items']) == 1
        assert len(client.get('/api/stock/out-of-stock').get_json()['items']) == 1
        assert client.get('/api/stock/expiring?days=-1').status_code == 400

    def test_search(self, client):
        _product(client, batch='LOT-55')
        assert len(client.get('/api/stock/products?q=lot-5').get_json()['items']) == 1
        assert client.get('/api/stock/products?q=zzz').get_json()['items'] == []

    def test_export_then_import(self, client):
        _product(client)
        exported = client.get('/api/stock/export')
        assert exported.mimetype == 'application/json'
        assert len(json.loads(exported.get_data(as_text=True))) == 1

        resp = client.post('/api/stock/import', data=exported.get_data(), content_type='application/json')
        assert resp.get_json() == {'success': True, 'imported': 1}

    def test_malformed_import(self, client):
        resp = client.post('/api/stock/import', data='{broken', content_type='application/json')
        assert resp.status_code == 400
        body = resp.get_json()
        assert body['success'] is False
        assert body['code'] == 'VALIDATION_FAILURE'

    def test_bulk_add(self, client):
        resp = client.post('/api/stock/bulk', json={'items': [
            {'itemCode': 'A', 'itemName': 'Alpha'},
            {'itemCode': 'B', 'itemName': 'Beta'},
        ]})
        assert resp.status_code == 201
        assert resp.get_json()['count'] == 2

    def test_clear_requires_confirmation(self, client):
        _product(client)
        assert client.delete('/api/stock/products').status_code == 400
        assert client.delete('/api/stock/products?confirm=yes').get_json() == {'deleted': 1}


class TestPurchaseRoutes:

    def test_create_return_and_remaining(self, client, purchase_payload):
        _product(client)

        resp = client.post('/api/purchases', json=purchase_payload)
        assert resp.status_code == 201

        dup = client.post('/api/purchases', json=purchase_payload)
        assert dup.status_code == 409
        assert dup.get_json()['code'] == 'DUPLICATE_KEY'

        ret = client.post('/api/purchases/INV-1/returns', json={
            'selected': [{'productName': 'Paracetamol 500', 'batch': 'B1', 'qty': 2}],
            'reason': 'Expired',
            'refundMethod': 'Cash',
        })
        assert ret.status_code == 201
        body = ret.get_json()
        assert body['returnNo'] == 'RET-INV-1-1'
        assert body['totalReturnAmount'] == 201.6
        assert body['stock']['status'] == 'APPLIED'

        view = client.get('/api/purchases/INV-1/remaining').get_json()
        assert view['state'] == 'PARTIALLY_RETURNED'
        assert view['totalRefunded'] == 201.6

        assert len(client.get('/api/purchases/INV-1/returns').get_json()['items']) == 1
        assert len(client.get('/api/purchases/returns').get_json()['items']) == 1
        assert client.get('/api/stock/level?code=P1&batch=B1').get_json()['stock'] == 18

    def test_pending_and_retry(self, client, purchase_payload):
        client.post('/api/purchases', json=purchase_payload)
        ret = client.post('/api/purchases/INV-1/returns', json={
            'selected': [{'productKey': 'Cough Syrup_CS-22', 'qty': 1}],
        }).get_json()
        assert ret['stock']['status'] == 'FAILED'

        pending = client.get('/api/purchases/returns/pending').get_json()['items']
        assert [p['id'] for p in pending] == [ret['returnId']]

        _product(client, itemCode='C7', itemName='Cough Syrup', batch='CS-22', stockQuantity=3)
        retried = client.post(f"/api/purchases/returns/{ret['returnId']}/retry")
        assert retried.get_json()['status'] == 'APPLIED'

    def test_not_found(self, client):
        assert client.get('/api/purchases/INV-404').status_code == 404
        assert client.get('/api/purchases/INV-404/remaining').status_code == 404
        resp = client.post('/api/purchases/INV-404/returns', json={'selected': [{'productName': 'x', 'qty': 1}]})
        assert resp.status_code == 404


class TestSalesRoutes:

    def _invoice(self):
        return {
            'header': {'invoiceDate': '2024-03-15', 'patientName': 'Ravi', 'paymentMode': 'UPI'},
            'items': [
                {'itemCode': 'P1', 'itemName': 'Para', 'quantity': 2, 'rate': 100, 'cgstPercent': 5, 'sgstPercent': 5},
                {'itemCode': 'C7', 'itemName': 'Syrup', 'quantity': 1, 'rate': 50, 'cgstPercent': 5, 'sgstPercent': 5},
            ],
        }

    def test_save_return_and_query(self, client):
        resp = client.post('/api/sales', json=self._invoice())
        assert resp.status_code == 201
        saved = resp.get_json()
        assert saved['invoiceNo'] == '1'

        invoice = client.get(f"/api/sales/{saved['id']}").get_json()
        assert invoice['totals']['grossTotal'] == 250

        line_id = invoice['items'][0]['lineId']
        ret = client.post(f"/api/sales/{saved['id']}/returns", json={'lineReference': line_id, 'qty': 1})
        assert ret.status_code == 200
        assert ret.get_json()['invoice']['totals']['grossTotal'] == 150

        rows = client.get('/api/sales?from=2024-03-01&to=2024-03-31&q=ravi').get_json()
        assert rows['count'] == 1
        assert rows['items'][0]['gross'] == 150

        assert client.get('/api/sales/next-number').get_json() == {'next': 2}
        assert client.get('/api/sales/by-number/1').get_json()['id'] == saved['id']

    def test_errors(self, client):
        assert client.get('/api/sales/999').status_code == 404
        assert client.post('/api/sales/999/returns', json={'lineReference': 1, 'qty': 1}).status_code == 404
        assert client.post('/api/sales', json={'header': {}, 'items': []}).status_code == 400
        assert client.get('/api/sales?from=2024-13-01').status_code == 400
        assert client.post('/api/sales/1/returns', json={'qty': 1}).status_code == 400


class TestNonFiniteInput:
    """NaN and infinities answer 400 and store nothing."""

    def test_product_with_nan_price(self, client):
        resp = client.post(
            '/api/stock/products',
            data='{"itemCode": "F1", "itemName": "Folic", "purchasePrice": NaN}',
            content_type='application/json',
        )
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_FAILURE'

        resp = client.post('/api/stock/products', json={'itemCode': 'F1', 'itemName': 'Folic', 'mrp': 'nan'})
        assert resp.status_code == 400
        assert client.get('/api/stock/products').get_json()['items'] == []

    def test_sale_with_infinite_rate(self, client):
        payload = {
            'header': {'invoiceDate': '2024-03-15'},
            'items': [{'itemCode': 'P1', 'itemName': 'Para', 'quantity': 1, 'rate': 'Infinity'}],
        }
        resp = client.post('/api/sales', json=payload)
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_FAILURE'
        assert client.get('/api/sales/next-number').get_json() == {'next': 1}

    def test_purchase_with_infinite_rate(self, client, purchase_payload):
        purchase_payload['items'][0]['rate'] = 'Infinity'

        resp = client.post('/api/purchases', json=purchase_payload)

        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_FAILURE'
        assert client.get('/api/purchases/INV-1').status_code == 404

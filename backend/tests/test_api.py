"""
HTTP-level tests through the Flask test client.
"""

from stoq.services import cart_service
from conftest import PASSWORD, _make_user, auth_headers, get_auth_token


# =============================================================================
# Auth and gates
# =============================================================================

def test_signup_creates_pending_account(client, db_session, inventory):
    response = client.post('/api/auth/signup', json={
        'email': 'fresh@shop.test',
        'password': PASSWORD,
        'business_name': 'Fresh Phones',
        'business_country': 'Canada',
    })

    assert response.status_code == 201
    assert response.json['user']['approval_status'] == 'pending'
    assert response.json['user']['business_name'] == 'Fresh Phones'

    headers = auth_headers(response.json['token'])
    order = client.post('/api/orders', json={
        'items': [{'item_id': inventory['iphone'].id, 'quantity': 1}],
    }, headers=headers)
    assert order.status_code == 403
    assert order.json['approval_status'] == 'pending'


def test_signup_rejects_privileged_fields(client, db_session):
    response = client.post('/api/auth/signup', json={
        'email': 'sneaky@shop.test',
        'password': PASSWORD,
        'role': 'admin',
    })
    assert response.status_code == 400


def test_signup_rejects_weak_password(client, db_session):
    response = client.post('/api/auth/signup', json={'email': 'weak@shop.test', 'password': 'password'})
    assert response.status_code == 400


def test_bad_login(client, customer):
    response = client.post('/api/auth/login', json={'email': customer.email, 'password': 'Wrong123!'})
    assert response.status_code == 401
    assert client.post('/api/auth/login', json={}).status_code == 400


def test_me_requires_token(client, db_session):
    assert client.get('/api/auth/me').status_code == 401
    assert client.get('/api/auth/me', headers=auth_headers('nope')).status_code == 401


def test_logout_invalidates_token(client, customer):
    token = get_auth_token(client, customer.email)
    headers = auth_headers(token)

    assert client.get('/api/auth/me', headers=headers).json['user']['email'] == customer.email
    assert client.post('/api/auth/logout', headers=headers).status_code == 200
    assert client.get('/api/auth/me', headers=headers).status_code == 401


def test_customers_blocked_from_admin_routes(client, customer_headers):
    assert client.get('/api/orders', headers=customer_headers).status_code == 403
    assert client.get('/api/users', headers=customer_headers).status_code == 403
    assert client.get('/api/reports/inventory', headers=customer_headers).status_code == 403
    assert client.post('/api/inventory', json={}, headers=customer_headers).status_code == 403


def test_admin_approves_signup(client, admin_headers, pending_customer):
    response = client.post(
        f'/api/users/{pending_customer.id}/approval',
        json={'status': 'approved'},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json['profile']['approval_status'] == 'approved'


# =============================================================================
# Inventory
# =============================================================================

def test_public_inventory_hides_cost(client, inventory):
    response = client.get('/api/inventory?brand=Google')
    assert response.status_code == 200
    assert [i['device_name'] for i in response.json['items']] == ['Pixel 7']
    assert 'price_per_unit_cents' not in response.json['items'][0]

    detail = client.get(f"/api/inventory/{inventory['galaxy'].id}")
    assert detail.json['stock_status'] == 'critical'

    assert client.get('/api/inventory?price_range=free').status_code == 400


def test_admin_inventory_crud(client, admin_headers, inventory):
    created = client.post('/api/inventory', json={
        'device_name': 'iPhone 15', 'brand': 'Apple', 'grade': 'a', 'storage': '256GB',
        'quantity': 4, 'price_per_unit_cents': 90000,
    }, headers=admin_headers)
    assert created.status_code == 201
    assert created.json['grade'] == 'A'

    duplicate = client.post('/api/inventory', json={
        'device_name': 'iPhone 15', 'grade': 'A', 'storage': '256GB',
        'quantity': 1, 'price_per_unit_cents': 1,
    }, headers=admin_headers)
    assert duplicate.status_code == 409

    item_id = created.json['id']
    updated = client.put(f'/api/inventory/{item_id}', json={'quantity': 2.5}, headers=admin_headers)
    assert updated.status_code == 400

    removed = client.delete(f'/api/inventory/{item_id}', headers=admin_headers)
    assert removed.status_code == 200
    assert client.get(f'/api/inventory/{item_id}').status_code == 404

    admin_view = client.get('/api/inventory/admin?include_inactive=true', headers=admin_headers)
    assert 'iPhone 15' in [i['device_name'] for i in admin_view.json['items']]


# =============================================================================
# Order to invoice
# =============================================================================

def test_order_to_confirmed_invoice(client, customer_headers, admin_headers, inventory, ontario_hst):
    iphone = inventory['iphone']

    cart = client.put('/api/cart', json={'items': [{'item_id': iphone.id, 'quantity': 2}]},
                      headers=customer_headers)
    assert cart.status_code == 200
    assert cart.json['resolved'][0]['quantity'] == 2

    placed = client.post('/api/orders', json={'items': [{'item_id': iphone.id, 'quantity': 2}]},
                         headers=customer_headers)
    assert placed.status_code == 201
    order_id = placed.json['id']
    assert placed.json['totals']['total_cents'] == 107350
    assert client.get('/api/cart', headers=customer_headers).json['items'] == []

    approved = client.post(f'/api/orders/{order_id}/status', json={'status': 'approved'},
                           headers=admin_headers)
    assert approved.status_code == 200
    assert client.get(f'/api/inventory/{iphone.id}').json['quantity'] == 23

    document_url = f'/api/invoices/{order_id}/document'
    assert client.get(document_url, headers=customer_headers).status_code == 404

    saved = client.put(f'/api/invoices/{order_id}', json={
        'discount_type': 'percentage', 'discount_value': 10, 'shipping_cents': 5000,
    }, headers=admin_headers)
    assert saved.status_code == 200
    assert saved.json['invoice_state'] == 'draft'

    assert client.get(document_url, headers=customer_headers).status_code == 403
    mine = client.get(f'/api/orders/{order_id}', headers=customer_headers)
    assert mine.json['totals']['total_cents'] == 107350

    confirmed = client.post(f'/api/invoices/{order_id}/confirm', headers=admin_headers)
    assert confirmed.status_code == 200
    assert client.post(f'/api/invoices/{order_id}/confirm', headers=admin_headers).status_code == 409

    document = client.get(document_url, headers=customer_headers)
    assert document.status_code == 200
    # 95000 - 10% + 50.00 shipping = 90500, plus 13%
    assert document.json['totals']['total_cents'] == 90500 + 11765


def test_short_stock_approval_is_conflict(client, db_session, customer_headers, admin_headers, inventory):
    galaxy = inventory['galaxy']
    placed = client.post('/api/orders', json={'items': [{'item_id': galaxy.id, 'quantity': 3}]},
                         headers=customer_headers)
    galaxy.quantity = 1
    db_session.commit()

    response = client.post(f"/api/orders/{placed.json['id']}/status", json={'status': 'approved'},
                           headers=admin_headers)
    assert response.status_code == 409
    assert response.json['details']['on_hand'] == 1


def test_customers_cannot_see_other_orders(client, admin_headers, inventory, db_session, password_hash):
    placed = client.post('/api/orders', json={'items': [{'item_id': inventory['iphone'].id, 'quantity': 1}]},
                         headers=admin_headers)
    assert placed.status_code == 201

    other = _make_user(db_session, password_hash, 'other@shop.test')
    other_headers = auth_headers(get_auth_token(client, other.email))
    assert client.get(f"/api/orders/{placed.json['id']}", headers=other_headers).status_code == 404


def test_cart_quantity_conflict(client, customer_headers, inventory):
    response = client.put(f"/api/cart/items/{inventory['galaxy'].id}", json={'quantity': 4},
                          headers=customer_headers)
    assert response.status_code == 409
    assert response.json['details']['available'] == 3


def test_cart_storage_failure_is_500(client, customer_headers, monkeypatch):
    def broken_load(user_id):
        raise RuntimeError("cart storage unavailable")

    monkeypatch.setattr(cart_service, 'load_cart', broken_load)

    response = client.get('/api/cart', headers=customer_headers)
    assert response.status_code == 500
    assert response.json == {'error': 'Internal server error'}


def test_profile_includes_tax(client, customer_headers, ontario_hst):
    profile = client.get('/api/users/profile', headers=customer_headers)
    assert profile.json['tax'] == {'tax_rate_bps': 1300, 'tax_type': 'HST'}


# =============================================================================
# System
# =============================================================================

def test_health(client, db_session):
    response = client.get('/api/system/health')
    assert response.status_code == 200
    assert response.json['status'] == 'healthy'


def test_cors_header_for_known_origin(client, db_session):
    allowed = client.get('/api/system/health', headers={'Origin': 'http://localhost:3000'})
    assert allowed.headers['Access-Control-Allow-Origin'] == 'http://localhost:3000'

    other = client.get('/api/system/health', headers={'Origin': 'http://evil.test'})
    assert 'Access-Control-Allow-Origin' not in other.headers

"""
Product categories, customers and the maintenance CLI.
"""

from stockpilot.models import CustomerCategory, User


class TestProductCategories:

    def test_crud(self, client, admin_headers):
        resp = client.post("/api/categories", json={"name": "Snacks", "description": "Dry food"}, headers=admin_headers)
        assert resp.status_code == 201
        category_id = resp.json["category"]["id"]

        resp = client.put(f"/api/categories/{category_id}", json={"name": "Snack Foods"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["category"]["name"] == "Snack Foods"

        resp = client.get("/api/categories?search=snack", headers=admin_headers)
        assert resp.json["pagination"]["total"] == 1

        assert client.delete(f"/api/categories/{category_id}", headers=admin_headers).status_code == 200

    def test_duplicate_name(self, client, admin_headers, category):
        resp = client.post("/api/categories", json={"name": "Beverages"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_refused_while_products_assigned(self, client, admin_headers, product):
        resp = client.delete(f"/api/categories/{product.category_id}", headers=admin_headers)
        assert resp.status_code == 409
        assert "1 product(s)" in resp.json["error"]


class TestCustomers:

    def test_create_and_search(self, client, admin_headers, customer_category):
        resp = client.post("/api/customers", json={
            "name": "Quang Ho",
            "customer_code": "KH050",
            "email": "quang@example.com",
            "category_id": customer_category.id,
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["customer"]["category_name"] == "Wholesale"

        resp = client.get("/api/customers?search=kh050", headers=admin_headers)
        assert [c["name"] for c in resp.json["items"]] == ["Quang Ho"]

    def test_invalid_email(self, client, admin_headers):
        resp = client.post("/api/customers", json={"name": "No Mail", "email": "nope"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "email" in resp.json["errors"]

    def test_duplicate_code(self, client, admin_headers, customer):
        resp = client.post("/api/customers", json={"name": "Other", "customer_code": "KH001"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_refused_with_orders(self, client, admin_headers, customer, product):
        client.post("/api/orders", json={
            "customer_id": customer.id, "items": [{"product_id": product.id, "quantity": 1}],
        }, headers=admin_headers)

        resp = client.delete(f"/api/customers/{customer.id}", headers=admin_headers)
        assert resp.status_code == 409

        resp = client.get(f"/api/customers/{customer.id}/orders", headers=admin_headers)
        assert resp.json["pagination"]["total"] == 1

    def test_delete(self, client, admin_headers, customer):
        assert client.delete(f"/api/customers/{customer.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/customers/{customer.id}", headers=admin_headers).status_code == 404


class TestCli:

    def test_system_init_creates_admin_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        assert "PASS Created admin user: admin@stockpilot.local" in result.output

        result = runner.invoke(args=["system", "init"])
        assert "PASS Using existing admin" in result.output
        assert db_session.query(User).count() == 1

    def test_users_create_rejects_weak_password(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--name", "Weak", "--email", "weak@example.com",
            "--password", "short", "--role", "employee",
        ])
        assert result.exit_code != 0
        assert "at least 8 characters" in result.output

    def test_repair_codes(self, app, db_session):
        db_session.add(CustomerCategory(name="Retail", code="re-tail", is_active=True))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["categories", "repair-codes"])

        assert "PASS Repaired 1 customer category code(s)" in result.output
        db_session.expire_all()
        assert db_session.query(CustomerCategory).one().code == "RETAIL"

"""
End-to-end API tests through FastAPI's TestClient.

Background generation runs on the real worker pool; tests call
``services.generation_pool.drain()`` before asserting on its results.
"""
import json
import pytest
from fastapi.testclient import TestClient

from letterdesk.main import create_app
from letterdesk.models.db_models import EmployeeDB, LetterDB, LetterStatus, UserRole, UserSubscriptionDB
from letterdesk.services.container import build_services
from letterdesk.services.payments import PaymentGateway


@pytest.fixture
def owner(make_user):
    return make_user(full_name="Jane Doe", email="jane@example.com")


@pytest.fixture
def admin(make_user):
    return make_user(role=UserRole.ADMIN, full_name="Ada Attorney")


def _create_letter(client, headers, services, letter_data, **overrides):
    response = client.post("/letters", json=letter_data(**overrides), headers=headers)
    assert response.status_code == 200, response.text
    services.generation_pool.drain(timeout=30)
    return response.json()


def succeeded_event(user_id, plan_id, discount_code="", final_price="239.20"):
    return {
        "id": "evt_referral_1",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_1", "metadata": {
            "userId": user_id,
            "planId": plan_id,
            "discountCode": discount_code,
            "originalPrice": "299.00",
            "discountAmount": "59.80",
            "finalPrice": final_price,
        }}},
    }


# =============================================================================
# TEST: AUTH
# =============================================================================

class TestAuthApi:

    def test_signup_login_me(self, client):
        response = client.post("/auth/signup", json={
            "email": "New.User@Example.com",
            "password": "password123",
            "full_name": "New User",
        })
        assert response.status_code == 200, response.text
        assert response.json()["user"]["email"] == "new.user@example.com"
        assert response.json()["user"]["role"] == "user"

        login = client.post("/auth/login", json={"email": "new.user@example.com", "password": "password123"})
        assert login.status_code == 200
        token = login.json()["token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["user"]["full_name"] == "New User"

    def test_employee_signup_gets_referral_code(self, client, db):
        response = client.post("/auth/signup", json={
            "email": "sam@example.com",
            "password": "password123",
            "full_name": "Sam Seller",
            "user_type": "employee",
        })
        assert response.status_code == 200, response.text

        employee = db.get(EmployeeDB, response.json()["user"]["id"])
        assert employee.referral_code == "EMPLOYEE20-SS"

    def test_admin_signup_refused(self, client):
        response = client.post("/auth/signup", json={
            "email": "boss@example.com",
            "password": "password123",
            "full_name": "Boss",
            "user_type": "admin",
        })
        assert response.status_code == 422

    def test_duplicate_signup(self, client, owner):
        response = client.post("/auth/signup", json={
            "email": "jane@example.com", "password": "password123", "full_name": "Jane Again",
        })
        assert response.status_code == 400

    def test_bad_password(self, client, owner):
        response = client.post("/auth/login", json={"email": "jane@example.com", "password": "wrong-password"})
        assert response.status_code == 401

    def test_missing_and_invalid_token(self, client):
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401


# =============================================================================
# TEST: LETTER LIFECYCLE
# =============================================================================

class TestLettersApi:

    def test_single_credit_scenario(self, client, services, owner, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        headers = auth_headers(owner)

        created = _create_letter(client, headers, services, letter_data)
        assert created["status"] == "requested"

        letter = client.get(f"/letters/{created['id']}", headers=headers).json()
        assert letter["status"] == "reviewing"
        assert letter["ai_generated_content"]

        subscription = client.get("/user/subscription", headers=headers).json()
        assert subscription["letters_remaining"] == 0
        assert subscription["letters_used"] == 1

        second = client.post("/letters", json=letter_data(), headers=headers)
        assert second.status_code == 400
        assert "letters remaining" in second.json()["detail"]

    def test_admin_completes_letter(self, client, services, owner, admin, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        created = _create_letter(client, auth_headers(owner), services, letter_data)

        response = client.patch(
            f"/letters/{created['id']}",
            json={"status": "completed", "final_content": "Final approved text."},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "completed"
        assert body["document_ref"]
        assert body["completed_at"]
        assert body["final_content"] == "Final approved text."

    def test_download_flow(self, client, services, owner, admin, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        created = _create_letter(client, auth_headers(owner), services, letter_data)
        letter_id = created["id"]

        early = client.get(f"/letters/{letter_id}/download", headers=auth_headers(owner))
        assert early.status_code == 409

        client.patch(f"/letters/{letter_id}", json={"status": "completed"}, headers=auth_headers(admin))

        admin_copy = client.get(f"/admin/letters/{letter_id}/download", headers=auth_headers(admin))
        assert admin_copy.status_code == 200
        assert admin_copy.headers["content-type"] == "application/pdf"
        assert client.get(f"/letters/{letter_id}", headers=auth_headers(owner)).json()["status"] == "completed"

        first = client.get(f"/letters/{letter_id}/download", headers=auth_headers(owner))
        second = client.get(f"/letters/{letter_id}/download", headers=auth_headers(owner))
        assert first.status_code == 200
        assert first.content == second.content == admin_copy.content
        assert client.get(f"/letters/{letter_id}", headers=auth_headers(owner)).json()["status"] == "downloaded"

    def test_admin_cannot_skip_review(self, client, services, owner, admin, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        created = _create_letter(client, auth_headers(owner), services, letter_data)

        response = client.patch(
            f"/letters/{created['id']}", json={"status": "downloaded"}, headers=auth_headers(admin)
        )
        assert response.status_code == 422

    def test_admin_cannot_move_generating_letter_to_review(
        self, client, services, db, owner, admin, make_subscription, auth_headers, letter_data
    ):
        make_subscription(owner, letters=1)
        created = _create_letter(client, auth_headers(owner), services, letter_data)
        letter = db.get(LetterDB, created["id"])
        letter.status = LetterStatus.GENERATING
        letter.ai_generated_content = None
        db.commit()

        response = client.patch(
            f"/letters/{created['id']}", json={"status": "reviewing"}, headers=auth_headers(admin)
        )

        assert response.status_code == 409
        db.expire_all()
        assert db.get(LetterDB, created["id"]).status == LetterStatus.GENERATING
        complete = client.patch(
            f"/letters/{created['id']}",
            json={"status": "completed", "final_content": "x"},
            headers=auth_headers(admin),
        )
        assert complete.status_code == 409

    def test_owner_cannot_patch(self, client, services, owner, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        created = _create_letter(client, auth_headers(owner), services, letter_data)

        response = client.patch(f"/letters/{created['id']}", json={"status": "completed"}, headers=auth_headers(owner))
        assert response.status_code == 403

    def test_other_user_cannot_read(self, client, services, owner, make_user, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        created = _create_letter(client, auth_headers(owner), services, letter_data)

        response = client.get(f"/letters/{created['id']}", headers=auth_headers(make_user()))
        assert response.status_code == 403

    def test_listing_scopes(self, client, services, owner, admin, make_user, make_subscription, auth_headers, letter_data):
        other = make_user()
        make_subscription(owner, letters=1)
        make_subscription(other, letters=1)
        _create_letter(client, auth_headers(owner), services, letter_data)
        _create_letter(client, auth_headers(other), services, letter_data)

        assert len(client.get("/letters", headers=auth_headers(owner)).json()) == 1
        assert len(client.get("/letters", headers=auth_headers(admin)).json()) == 2

    def test_unknown_letter(self, client, admin, auth_headers):
        assert client.get("/letters/missing", headers=auth_headers(admin)).status_code == 404

    def test_invalid_address_rejected(self, client, owner, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        payload = letter_data(sender_address={"street": "", "city": "X", "state": "Y", "zip": "1"})

        assert client.post("/letters", json=payload, headers=auth_headers(owner)).status_code == 422

    def test_failed_generation_can_be_retried(
        self, client, services, generator, owner, make_subscription, auth_headers, letter_data
    ):
        make_subscription(owner, letters=1)
        generator.fail = True
        created = _create_letter(client, auth_headers(owner), services, letter_data)

        letter = client.get(f"/letters/{created['id']}", headers=auth_headers(owner)).json()
        assert letter["status"] == "requested"
        assert client.get("/user/subscription", headers=auth_headers(owner)).json()["letters_remaining"] == 1

        generator.fail = False
        retry = client.post(f"/letters/{created['id']}/generate", headers=auth_headers(owner))
        assert retry.status_code == 200
        services.generation_pool.drain(timeout=30)

        letter = client.get(f"/letters/{created['id']}", headers=auth_headers(owner)).json()
        assert letter["status"] == "reviewing"


class TestGenerationUnavailable:

    def test_create_letter_503_without_generator(
        self, settings, database, renderer, owner, make_subscription, auth_headers, letter_data
    ):
        make_subscription(owner, letters=1)
        services = build_services(settings, database=database, renderer=renderer)
        assert services.content_generator is None

        with TestClient(create_app(services=services)) as client:
            response = client.post("/letters", json=letter_data(), headers=auth_headers(owner))
            health = client.get("/health").json()

        assert response.status_code == 503
        assert health["generation"] is False


# =============================================================================
# TEST: PAYMENTS
# =============================================================================

class TestPaymentsApi:

    def test_plans_seeded(self, client):
        plans = client.get("/subscription-plans").json()
        assert [p["letter_count"] for p in plans] == [1, 48, 96]
        assert plans[0]["billing_cycle"] == "one-time"

    def test_payments_unconfigured(self, client, owner, auth_headers):
        assert client.get("/payments/config").status_code == 503
        plan_id = client.get("/subscription-plans").json()[0]["id"]
        response = client.post("/create-payment-intent", json={"plan_id": plan_id}, headers=auth_headers(owner))
        assert response.status_code == 503

    def test_referred_purchase_via_webhook(self, paid_client, owner, auth_headers, sign_webhook):
        client = paid_client
        signup = client.post("/auth/signup", json={
            "email": "sam@example.com", "password": "password123",
            "full_name": "Sam Seller", "user_type": "employee",
        }).json()
        employee_headers = {"Authorization": f"Bearer {signup['token']}"}
        plan = client.get("/subscription-plans").json()[1]  # 48 letters, 299.00

        payload = json.dumps(succeeded_event(owner.id, plan["id"], discount_code="EMPLOYEE20-SS")).encode()
        headers = {"Stripe-Signature": sign_webhook(payload)}
        first = client.post("/webhooks/stripe", content=payload, headers=headers)
        again = client.post("/webhooks/stripe", content=payload, headers=headers)

        assert first.json()["processed"] is True
        assert again.json()["duplicate"] is True

        subscription = client.get("/user/subscription", headers=auth_headers(owner)).json()
        assert subscription["letters_remaining"] == 48
        assert subscription["final_price"] == 239.20

        dashboard = client.get("/employee/dashboard", headers=employee_headers).json()
        assert len(dashboard["commissions"]) == 1
        assert dashboard["commissions"][0]["commission_amount"] == 11.96
        assert dashboard["employee"]["total_points"] == 1
        assert dashboard["pending_commission"] == 11.96
        assert dashboard["referrals_to_next_tier"] == 9

    def test_webhook_unavailable_without_stripe(self, client, db, owner):
        plan = client.get("/subscription-plans").json()[2]
        payload = json.dumps(succeeded_event(owner.id, plan["id"], final_price="0.00")).encode()

        response = client.post("/webhooks/stripe", content=payload)

        assert response.status_code == 503
        assert db.query(UserSubscriptionDB).count() == 0

    def test_webhook_unavailable_without_signing_secret(self, settings, database, renderer, db, owner):
        services = build_services(
            settings, database=database, renderer=renderer, payment_gateway=PaymentGateway("sk_test"),
        )
        with TestClient(create_app(services=services)) as client:
            plan = client.get("/subscription-plans").json()[0]
            payload = json.dumps(succeeded_event(owner.id, plan["id"])).encode()
            response = client.post("/webhooks/stripe", content=payload)

        assert response.status_code == 503
        assert db.query(UserSubscriptionDB).count() == 0

    def test_unsigned_webhook_rejected(self, paid_client, db, owner, sign_webhook):
        plan = paid_client.get("/subscription-plans").json()[2]
        payload = json.dumps(succeeded_event(owner.id, plan["id"], final_price="0.00")).encode()

        unsigned = paid_client.post("/webhooks/stripe", content=payload)
        forged = paid_client.post(
            "/webhooks/stripe", content=payload,
            headers={"Stripe-Signature": sign_webhook(payload, secret="whsec_other")},
        )

        assert unsigned.status_code == 400
        assert forged.status_code == 400
        assert db.query(UserSubscriptionDB).count() == 0

    def test_malformed_webhook(self, paid_client, sign_webhook):
        payload = b"not json"
        response = paid_client.post(
            "/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign_webhook(payload)},
        )
        assert response.status_code == 400


# =============================================================================
# TEST: ADMIN / EMPLOYEE / MAINTENANCE
# =============================================================================

class TestAdminApi:

    def test_dashboard(self, client, services, owner, admin, make_subscription, auth_headers, letter_data):
        make_subscription(owner, letters=1)
        _create_letter(client, auth_headers(owner), services, letter_data)

        dashboard = client.get("/admin/dashboard", headers=auth_headers(admin)).json()

        assert dashboard["total_users"] == 2
        assert dashboard["total_letters"] == 1
        assert dashboard["letters_by_status"]["reviewing"] == 1

    def test_admin_routes_forbidden_for_users(self, client, owner, auth_headers):
        for path in ("/admin/dashboard", "/admin/users", "/admin/employees"):
            assert client.get(path, headers=auth_headers(owner)).status_code == 403

    def test_users_listing(self, client, owner, admin, make_subscription, auth_headers):
        make_subscription(owner, letters=4)

        users = client.get("/admin/users", headers=auth_headers(admin)).json()
        row = next(u for u in users if u["user"]["id"] == owner.id)
        assert row["subscription"]["letters_remaining"] == 4
        assert row["letter_count"] == 0

    def test_adjust_credits(self, client, owner, admin, make_subscription, auth_headers):
        subscription = make_subscription(owner, letters=1)

        response = client.post(
            f"/admin/subscriptions/{subscription.id}/adjust-credits",
            json={"delta": 2, "reason": "goodwill"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["letters_remaining"] == 3

        refused = client.post(
            f"/admin/subscriptions/{subscription.id}/adjust-credits",
            json={"delta": -10},
            headers=auth_headers(admin),
        )
        assert refused.status_code == 400

    def test_deactivate_employee_and_pay_commission(
        self, client, db, store, owner, admin, make_user, make_plan, auth_headers
    ):
        from letterdesk.services.commission import CommissionEngine

        employee = store.create_employee(make_user(role=UserRole.EMPLOYEE, full_name="Sam Seller"))
        plan = make_plan()
        commissions = CommissionEngine(db)
        quote = commissions.quote_price(plan, employee.referral_code)
        subscription = store.create_subscription(
            owner.id, plan, quote.original_price, quote.discount_amount, quote.final_price, quote.referral_code
        )
        record = commissions.award(subscription, quote.referral_code)
        db.commit()

        paid = client.post(f"/admin/commissions/{record.id}/pay", headers=auth_headers(admin))
        assert paid.json()["status"] == "paid"

        updated = client.patch(f"/admin/employees/{employee.id}", json={"is_active": False}, headers=auth_headers(admin))
        assert updated.json()["is_active"] is False

        employees = client.get("/admin/employees", headers=auth_headers(admin)).json()
        assert employees[0]["full_name"] == "Sam Seller"

    def test_employee_dashboard_requires_employee(self, client, owner, auth_headers):
        assert client.get("/employee/dashboard", headers=auth_headers(owner)).status_code == 403


class TestMaintenanceApi:

    def test_reaper_requires_key(self, client):
        assert client.post("/internal/reap-stalled-generations").status_code == 403
        response = client.post(
            "/internal/reap-stalled-generations", headers={"X-Internal-Key": "internal-test-key"}
        )
        assert response.status_code == 200
        assert response.json() == {"letters_reset": 0, "stall_minutes": 15}

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

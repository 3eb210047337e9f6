"""API tests."""
import pytest
from httpx import AsyncClient

from booksmart.models.user import AccountStatus, UserRole

from conftest import TEST_PASSWORD, make_book, make_user


async def login(client: AsyncClient, email: str, password: str = TEST_PASSWORD) -> dict:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def admin_headers(client, session_maker):
    async with session_maker() as session:
        await make_user(session, email="admin@library.org", role=UserRole.ADMIN)
        await session.commit()
    return await login(client, "admin@library.org")


@pytest.fixture
async def reader_headers(client, session_maker):
    async with session_maker() as session:
        await make_user(session, email="reader@library.org")
        await session.commit()
    return await login(client, "reader@library.org")


@pytest.fixture
async def book_id(session_maker):
    async with session_maker() as session:
        book = await make_book(session, total=2)
        await session.commit()
        return book.id


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_register_user(client: AsyncClient):
    """New accounts start pending."""
    response = await client.post(
        "/api/v1/auth/register",
        json={
            "email": "test@example.com",
            "full_name": "Test Reader",
            "password": "testpassword123",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "test@example.com"
    assert data["role"] == "USER"
    assert data["status"] == "PENDING"


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient):
    body = {"email": "twice@example.com", "full_name": "Twice", "password": "testpassword123"}
    assert (await client.post("/api/v1/auth/register", json=body)).status_code == 201

    response = await client.post("/api/v1/auth/register", json=body)

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, reader_headers):
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "reader@library.org", "password": "not-the-password"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unauthorized_access(client: AsyncClient):
    """Borrowing requires a token."""
    response = await client.get("/api/v1/borrows")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_borrow_flow(client: AsyncClient, clock, notifier, admin_headers, reader_headers, book_id):
    response = await client.post(
        "/api/v1/borrows", json={"book_id": book_id}, headers=reader_headers
    )
    assert response.status_code == 201
    record_id = response.json()["id"]
    assert response.json()["status"] == "PENDING"

    response = await client.post(
        f"/api/v1/admin/borrows/{record_id}/approve", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "BORROWED"
    assert response.json()["due_date"] == "2024-01-08"
    # Sent once the request committed
    assert notifier.events() == ["approved"]

    response = await client.get(f"/api/v1/books/{book_id}", headers=reader_headers)
    assert response.json()["available_copies"] == 1

    # Three days late
    clock.advance(days=10)
    response = await client.get(f"/api/v1/borrows/{record_id}", headers=reader_headers)
    assert response.status_code == 200
    assert response.json()["accrued_fine"] == "3.00"

    response = await client.post(
        f"/api/v1/admin/borrows/{record_id}/return", headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "RETURNED"
    assert data["fine_amount"] == "3.00"
    assert data["returned_by"] == "admin@library.org"

    response = await client.get(f"/api/v1/books/{book_id}", headers=reader_headers)
    assert response.json()["available_copies"] == 2

    response = await client.get("/api/v1/admin/inventory/audit", headers=admin_headers)
    assert response.json()["consistent"] is True


@pytest.mark.asyncio
async def test_pending_account_cannot_borrow(client: AsyncClient, admin_headers, book_id):
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "newbie@example.com", "full_name": "Newbie", "password": "testpassword123"},
    )
    user_id = response.json()["id"]
    headers = await login(client, "newbie@example.com", "testpassword123")

    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "BORROW_NOT_ALLOWED"

    response = await client.put(
        f"/api/v1/admin/users/{user_id}/status",
        json={"status": "APPROVED"},
        headers=admin_headers,
    )
    assert response.status_code == 200

    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=headers)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_error_codes(client: AsyncClient, admin_headers, reader_headers, book_id):
    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=reader_headers)
    record_id = response.json()["id"]

    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=reader_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "DUPLICATE_ACTIVE_BORROW"

    await client.post(f"/api/v1/admin/borrows/{record_id}/approve", headers=admin_headers)
    response = await client.post(f"/api/v1/admin/borrows/{record_id}/approve", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_TRANSITION"

    response = await client.post("/api/v1/admin/borrows/999/return", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"

    response = await client.post(f"/api/v1/admin/borrows/{record_id}/approve", headers=reader_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_renew_overdue_loan_refused(client: AsyncClient, clock, admin_headers, reader_headers, book_id):
    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=reader_headers)
    record_id = response.json()["id"]
    await client.post(f"/api/v1/admin/borrows/{record_id}/approve", headers=admin_headers)

    response = await client.post(
        f"/api/v1/admin/borrows/{record_id}/renew",
        json={"extension_days": 5},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["due_date"] == "2024-01-13"

    clock.advance(days=20)
    response = await client.post(f"/api/v1/admin/borrows/{record_id}/renew", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "RENEWAL_NOT_ALLOWED"


@pytest.mark.asyncio
async def test_fine_config_and_refresh(client: AsyncClient, clock, admin_headers, reader_headers, book_id):
    response = await client.get("/api/v1/admin/fine-config", headers=admin_headers)
    assert response.json()["daily_fine_amount"] == "1.00"
    assert response.json()["version"] == 0

    response = await client.put(
        "/api/v1/admin/fine-config",
        json={"daily_fine_amount": "0.25"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["version"] == 1

    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=reader_headers)
    record_id = response.json()["id"]
    await client.post(f"/api/v1/admin/borrows/{record_id}/approve", headers=admin_headers)
    clock.advance(days=11)

    response = await client.post("/api/v1/admin/fines/refresh", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["updated_count"] == 1
    assert data["items"][0]["fine_amount"] == "1.00"


@pytest.mark.asyncio
async def test_inventory_repair_endpoint(client: AsyncClient, admin_headers, session_maker):
    async with session_maker() as session:
        drifted = await make_book(session, total=3, available=1)
        await session.commit()

    response = await client.get("/api/v1/admin/inventory/audit", headers=admin_headers)
    data = response.json()
    assert data["consistent"] is False
    assert data["discrepancies"][0]["drift"] == 2

    response = await client.post(
        f"/api/v1/admin/inventory/{drifted.id}/repair",
        json={"reason": "stocktake"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["repaired"] is True
    assert data["adjustment"]["new_available"] == 3
    assert data["adjustment"]["performed_by"] == "admin@library.org"

    response = await client.get("/api/v1/admin/inventory/audit", headers=admin_headers)
    assert response.json()["consistent"] is True


@pytest.mark.asyncio
async def test_other_users_record_is_hidden(client: AsyncClient, session_maker, reader_headers, book_id):
    async with session_maker() as session:
        await make_user(session, email="nosy@library.org", status=AccountStatus.APPROVED)
        await session.commit()
    nosy_headers = await login(client, "nosy@library.org")

    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=reader_headers)
    record_id = response.json()["id"]

    response = await client.get(f"/api/v1/borrows/{record_id}", headers=nosy_headers)
    assert response.status_code == 404


async def request_as(client: AsyncClient, session_maker, email: str, book_id: int) -> int:
    async with session_maker() as session:
        await make_user(session, email=email)
        await session.commit()
    headers = await login(client, email)
    response = await client.post("/api/v1/borrows", json={"book_id": book_id}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.mark.asyncio
async def test_bulk_approve_endpoint(client: AsyncClient, session_maker, admin_headers, book_id):
    first = await request_as(client, session_maker, "one@library.org", book_id)
    second = await request_as(client, session_maker, "two@library.org", book_id)
    third = await request_as(client, session_maker, "three@library.org", book_id)

    response = await client.post(
        "/api/v1/admin/borrows/bulk-approve",
        json={"record_ids": [first, second, third], "loan_period_days": 14},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert (data["succeeded"], data["failed"]) == (2, 1)
    assert [item["success"] for item in data["results"]] == [True, True, False]
    assert data["results"][0]["status"] == "BORROWED"
    assert data["results"][2]["error_code"] == "OUT_OF_STOCK"

    response = await client.get(f"/api/v1/borrows/{first}", headers=await login(client, "one@library.org"))
    assert response.json()["due_date"] == "2024-01-15"

    response = await client.get("/api/v1/admin/inventory/audit", headers=admin_headers)
    assert response.json()["consistent"] is True


@pytest.mark.asyncio
async def test_bulk_reject_endpoint(client: AsyncClient, session_maker, admin_headers, book_id):
    pending = await request_as(client, session_maker, "one@library.org", book_id)

    response = await client.post(
        "/api/v1/admin/borrows/bulk-reject",
        json={"record_ids": [pending, 999], "reason": "damaged copies"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert (data["succeeded"], data["failed"]) == (1, 1)
    assert data["results"][0]["status"] == "REJECTED"
    assert data["results"][1]["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_bulk_request_validation(client: AsyncClient, admin_headers, reader_headers):
    response = await client.post(
        "/api/v1/admin/borrows/bulk-approve", json={"record_ids": []}, headers=admin_headers
    )
    assert response.status_code == 422

    response = await client.post(
        "/api/v1/admin/borrows/bulk-reject", json={"record_ids": [1]}, headers=reader_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_due_soon_reminder_endpoint(client: AsyncClient, clock, notifier, session_maker, admin_headers, book_id):
    record_id = await request_as(client, session_maker, "one@library.org", book_id)
    await client.post(f"/api/v1/admin/borrows/{record_id}/approve", headers=admin_headers)
    notifier.sent.clear()

    # Due 2024-01-08, two days out
    clock.advance(days=5)
    response = await client.post("/api/v1/admin/reminders/due-soon", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["sent_count"] == 1
    assert data["items"][0] == {
        "record_id": record_id,
        "due_date": "2024-01-08",
        "days_until_due": 2,
        "sent": True,
    }
    assert notifier.events() == ["due_soon"]

    response = await client.post(
        "/api/v1/admin/reminders/due-soon", json={"days": 1}, headers=admin_headers
    )
    assert response.json() == {"sent_count": 0, "items": []}


@pytest.mark.asyncio
async def test_update_book_rejects_nulls(client: AsyncClient, admin_headers, book_id):
    for field in ("title", "author", "is_active"):
        response = await client.patch(
            f"/api/v1/admin/books/{book_id}", json={field: None}, headers=admin_headers
        )
        assert response.status_code == 422, field

    response = await client.patch(
        f"/api/v1/admin/books/{book_id}", json={"title": "   "}, headers=admin_headers
    )
    assert response.status_code == 422

    response = await client.patch(
        f"/api/v1/admin/books/{book_id}",
        json={"title": "  Baudolino ", "is_active": False},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Baudolino"
    assert data["author"] == "Umberto Eco"
    assert data["is_active"] is False


@pytest.mark.asyncio
async def test_error_bodies_are_documented(client: AsyncClient):
    response = await client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()

    assert set(schema["components"]["schemas"]["ErrorResponse"]["properties"]) == {
        "detail",
        "error_code",
        "details",
    }
    error_ref = {"$ref": "#/components/schemas/ErrorResponse"}
    approve = schema["paths"]["/api/v1/admin/borrows/{record_id}/approve"]["post"]
    assert approve["responses"]["409"]["content"]["application/json"]["schema"] == error_ref
    request = schema["paths"]["/api/v1/borrows"]["post"]
    assert request["responses"]["409"]["content"]["application/json"]["schema"] == error_ref

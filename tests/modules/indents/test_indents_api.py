from decimal import Decimal

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.models import UserRole
from textbook_indents.modules.textbooks.ledger import InventoryLedger
from tests.helpers import ACADEMIC_YEAR, OTHER_BRANCH_ID, auth_headers, create_user

BASE_URL = "/api/v1/textbook-indents"


class TestIndentEndpoints:
    """Tests for the indent API."""

    async def _create(self, client: AsyncClient, user, student, *lines, paid: str = "0.00"):
        return await client.post(
            BASE_URL,
            headers=auth_headers(user),
            json={
                "student_id": student.id,
                "academic_year": ACADEMIC_YEAR,
                "items": [{"textbook_id": t.id, "quantity": qty} for t, qty in lines],
                "payment_method": "cash",
                "paid_amount": paid,
            },
        )

    async def test_full_lifecycle(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook(quantity=10, price="80.00")

        response = await self._create(client, admin, student, (book, 3), paid="100.00")
        assert response.status_code == 201
        body = response.json()
        assert body["warnings"] == []
        indent = body["data"]
        assert indent["status"] == "pending"
        assert Decimal(indent["total_amount"]) == Decimal("240.00")
        assert Decimal(indent["balance_amount"]) == Decimal("140.00")
        assert indent["payment_status"] == "partial"
        assert indent["items"][0]["status"] == "issued"
        indent_id = indent["id"]
        item_id = indent["items"][0]["id"]

        response = await client.post(f"{BASE_URL}/{indent_id}/issue", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "issued"

        response = await client.post(
            f"{BASE_URL}/{indent_id}/return",
            headers=auth_headers(admin),
            json={"lines": [{"item_id": item_id, "quantity": 1, "condition": "good"}]},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "partially_returned"
        assert data["items"][0]["outstanding_quantity"] == 2
        assert len(data["returns"]) == 1

        response = await client.post(
            f"{BASE_URL}/{indent_id}/return",
            headers=auth_headers(admin),
            json={"lines": [{"item_id": item_id, "quantity": 2, "condition": "lost"}]},
        )
        assert response.json()["data"]["status"] == "returned"

        counters = await InventoryLedger(db_session).get_counters(book.id)
        assert (counters.quantity, counters.available) == (8, 8)

        response = await client.post(
            f"{BASE_URL}/{indent_id}/receipt", headers=auth_headers(admin)
        )
        assert response.status_code == 200
        receipt = response.json()["data"]
        assert receipt["lines"][0]["returned_quantity"] == 3
        assert receipt["issued_by"] == admin.full_name

    async def test_insufficient_stock(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook(quantity=2)

        response = await self._create(client, admin, student, (book, 3))

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "insufficient_stock"
        assert body["retryable"] is False

    async def test_overpayment_warning(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook(price="250.00")

        response = await self._create(client, admin, student, (book, 2), paid="700.00")

        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["data"]["paid_amount"]) == Decimal("500.00")
        assert Decimal(body["data"]["balance_amount"]) == Decimal("0.00")
        assert body["data"]["payment_status"] == "paid"
        assert len(body["warnings"]) == 1
        assert "exceeds total" in body["warnings"][0]

    async def test_duplicate_textbook_lines_rejected(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook()

        response = await self._create(client, admin, student, (book, 1), (book, 2))

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    async def test_invalid_transition(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook()
        response = await self._create(client, admin, student, (book, 1))
        indent = response.json()["data"]

        response = await client.post(
            f"{BASE_URL}/{indent['id']}/return",
            headers=auth_headers(admin),
            json={"lines": [{"item_id": indent["items"][0]["id"], "quantity": 1, "condition": "good"}]},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_transition"

    async def test_over_return(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook()
        indent = (await self._create(client, admin, student, (book, 1))).json()["data"]
        await client.post(f"{BASE_URL}/{indent['id']}/issue", headers=auth_headers(admin))

        response = await client.post(
            f"{BASE_URL}/{indent['id']}/return",
            headers=auth_headers(admin),
            json={"lines": [{"item_id": indent["items"][0]["id"], "quantity": 2, "condition": "good"}]},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_quantity"

    async def test_cancel_and_payment(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook(quantity=5, price="100.00")
        indent = (await self._create(client, admin, student, (book, 2))).json()["data"]

        response = await client.post(
            f"{BASE_URL}/{indent['id']}/payments",
            headers=auth_headers(admin),
            json={"amount": "50.00", "payment_method": "online"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["payment_method"] == "online"
        assert Decimal(response.json()["data"]["paid_amount"]) == Decimal("50.00")

        response = await client.post(
            f"{BASE_URL}/{indent['id']}/cancel",
            headers=auth_headers(admin),
            json={"reason": "Duplicate request"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["cancel_reason"] == "Duplicate request"
        assert (await InventoryLedger(db_session).get_counters(book.id)).available == 5

        response = await client.post(
            f"{BASE_URL}/{indent['id']}/payments",
            headers=auth_headers(admin),
            json={"amount": "10.00"},
        )
        assert response.status_code == 409

    async def test_update(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook(price="100.00")
        indent = (await self._create(client, admin, student, (book, 1))).json()["data"]

        response = await client.patch(
            f"{BASE_URL}/{indent['id']}",
            headers=auth_headers(admin),
            json={"paid_amount": "120.00", "remarks": "Settled"},
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["data"]["paid_amount"]) == Decimal("100.00")
        assert body["data"]["remarks"] == "Settled"
        assert len(body["warnings"]) == 1

    async def test_list_and_stats(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook(quantity=10, price="10.00")
        await self._create(client, admin, student, (book, 1))
        indent = (await self._create(client, admin, student, (book, 2))).json()["data"]
        await client.post(f"{BASE_URL}/{indent['id']}/issue", headers=auth_headers(admin))

        response = await client.get(
            BASE_URL, headers=auth_headers(admin), params={"status": "issued"}
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["indent_number"] == indent["indent_number"]
        assert data["items"][0]["total_quantity"] == 2

        response = await client.get(f"{BASE_URL}/stats", headers=auth_headers(admin))
        stats = response.json()["data"]
        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["issued"] == 1
        assert Decimal(stats["total_value"]) == Decimal("30.00")

    async def test_branch_isolation(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook()
        indent = (await self._create(client, admin, student, (book, 1))).json()["data"]
        outsider = await create_user(db_session, UserRole.BRANCH_ADMIN, OTHER_BRANCH_ID)

        response = await client.get(f"{BASE_URL}/{indent['id']}", headers=auth_headers(outsider))
        assert response.status_code == 404

        super_admin = await create_user(db_session, UserRole.SUPER_ADMIN)
        response = await client.get(
            f"{BASE_URL}/{indent['id']}", headers=auth_headers(super_admin)
        )
        assert response.status_code == 200

    async def test_teacher_is_read_only(
        self, client: AsyncClient, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook()
        teacher = await create_user(db_session, UserRole.TEACHER)

        response = await self._create(client, teacher, student, (book, 1))
        assert response.status_code == 403

        response = await client.get(BASE_URL, headers=auth_headers(teacher))
        assert response.status_code == 200

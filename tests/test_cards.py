"""
Tests for card endpoints (admin management and the holder's own view).

These tests verify:
  - Admins issue cards; responses only ever show the masked number
  - The database stores ciphertext, never the plaintext number
  - Duplicate numbers, unknown users and bad input are rejected
  - Users see only their own cards (someone else's card is a 404)
  - Activate is idempotent, block twice fails, balances can be set
  - Cards with money on them cannot be deleted
  - Filtering, sorting and paging, including parameter validation
  - Statistics and balance summaries
  - Role checks: USER cannot reach /admin endpoints
"""

from decimal import Decimal

from sqlalchemy import select

from app.models.card import Card
from conftest import CARD_A, CARD_B, NEXT_YEAR, create_card, register, login, bearer


def card_payload(**overrides):
    payload = {
        "username": "alice",
        "cardNumber": "4333333333333333",
        "cardHolderName": "ALICE TESTER",
        "expirationMonth": 6,
        "expirationYear": NEXT_YEAR,
        "initialBalance": "10.00",
    }
    payload.update(overrides)
    return payload


class TestCreateCard:
    """Tests for POST /admin/cards."""

    async def test_create_card(self, client, user_headers, admin_headers):
        response = await client.post("/admin/cards", headers=admin_headers, json=card_payload())
        assert response.status_code == 201
        data = response.json()
        assert data["maskedCardNumber"] == "**** **** **** 3333"
        assert data["cardHolderName"] == "ALICE TESTER"
        assert data["status"] == "ACTIVE"
        assert Decimal(data["balance"]) == Decimal("10.00")
        assert "cardNumber" not in data
        assert "encryptedNumber" not in data

    async def test_number_stored_encrypted(self, client, session_factory, alice_cards):
        async with session_factory() as session:
            stored = (await session.execute(select(Card.encrypted_number))).scalars().all()
        assert len(stored) == 2
        for value in stored:
            assert CARD_A not in value
            assert CARD_B not in value

    async def test_duplicate_number_rejected(self, client, admin_headers, alice_cards):
        response = await client.post(
            "/admin/cards", headers=admin_headers, json=card_payload(cardNumber=CARD_A)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Card number already exists"

    async def test_unknown_user(self, client, admin_headers):
        response = await client.post(
            "/admin/cards", headers=admin_headers, json=card_payload(username="ghost")
        )
        assert response.status_code == 404
        assert response.json()["message"] == "User not found: ghost"

    async def test_past_year_rejected(self, client, user_headers, admin_headers):
        response = await client.post(
            "/admin/cards",
            headers=admin_headers,
            json=card_payload(expirationYear=NEXT_YEAR - 2),
        )
        assert response.status_code == 400

    async def test_lowercase_holder_name_rejected(self, client, user_headers, admin_headers):
        response = await client.post(
            "/admin/cards", headers=admin_headers, json=card_payload(cardHolderName="alice tester")
        )
        assert response.status_code == 400
        assert "cardHolderName" in response.json()["message"]

    async def test_short_number_rejected(self, client, user_headers, admin_headers):
        response = await client.post(
            "/admin/cards", headers=admin_headers, json=card_payload(cardNumber="4111")
        )
        assert response.status_code == 400

    async def test_negative_balance_rejected(self, client, user_headers, admin_headers):
        response = await client.post(
            "/admin/cards", headers=admin_headers, json=card_payload(initialBalance="-1.00")
        )
        assert response.status_code == 400

    async def test_user_cannot_create(self, client, user_headers):
        response = await client.post("/admin/cards", headers=user_headers, json=card_payload())
        assert response.status_code == 403
        assert response.json()["error"] == "Insufficient Privileges"


class TestMyCards:
    """Tests for the /user/cards read endpoints."""

    async def test_list_own_cards(self, client, user_headers, alice_cards):
        response = await client.get("/user/cards", headers=user_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["totalElements"] == 2
        assert data["page"] == 0
        assert data["size"] == 20
        assert data["last"] is True
        # Default order: newest id first
        assert [c["id"] for c in data["content"]] == [alice_cards["b"]["id"], alice_cards["a"]["id"]]

    async def test_get_own_card(self, client, user_headers, alice_cards):
        card_id = alice_cards["a"]["id"]
        response = await client.get(f"/user/cards/{card_id}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["maskedCardNumber"] == "**** **** **** 1111"

    async def test_other_users_card_is_not_found(self, client, admin_headers, alice_cards):
        await register(client, "mallory")
        mallory = bearer(await login(client, "mallory"))

        response = await client.get(f"/user/cards/{alice_cards['a']['id']}", headers=mallory)
        assert response.status_code == 404

        listing = await client.get("/user/cards", headers=mallory)
        assert listing.json()["totalElements"] == 0

    async def test_balance_summary(self, client, user_headers, admin_headers, alice_cards):
        await create_card(client, admin_headers, "alice", "4333333333333333", "25.50")

        response = await client.get("/user/cards/balance", headers=user_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["totalBalance"]) == Decimal("125.50")
        assert data["cardsCount"] == 3
        assert data["username"] == "alice"

    async def test_balance_summary_without_cards(self, client, user_headers):
        response = await client.get("/user/cards/balance", headers=user_headers)
        assert Decimal(response.json()["totalBalance"]) == Decimal("0")
        assert response.json()["cardsCount"] == 0


class TestCardLifecycle:
    """Admin state transitions, balance updates and deletion."""

    async def test_admin_get_card(self, client, admin_headers, alice_cards):
        response = await client.get(f"/admin/cards/{alice_cards['a']['id']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["maskedCardNumber"] == "**** **** **** 1111"

    async def test_admin_get_missing_card(self, client, admin_headers):
        response = await client.get("/admin/cards/999", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Card Not Found"

    async def test_activate_is_idempotent(self, client, admin_headers, alice_cards):
        card_id = alice_cards["a"]["id"]
        for _ in range(2):
            response = await client.post(f"/admin/cards/{card_id}/activate", headers=admin_headers)
            assert response.status_code == 200
            assert response.json()["status"] == "ACTIVE"

    async def test_block_twice_fails(self, client, admin_headers, alice_cards):
        card_id = alice_cards["a"]["id"]
        first = await client.post(f"/admin/cards/{card_id}/block", headers=admin_headers)
        assert first.status_code == 200
        assert first.json()["status"] == "BLOCKED"

        second = await client.post(f"/admin/cards/{card_id}/block", headers=admin_headers)
        assert second.status_code == 400
        assert second.json()["message"] == "Card is already blocked"

    async def test_reactivate_blocked_card(self, client, admin_headers, alice_cards):
        card_id = alice_cards["a"]["id"]
        await client.post(f"/admin/cards/{card_id}/block", headers=admin_headers)
        response = await client.post(f"/admin/cards/{card_id}/activate", headers=admin_headers)
        assert response.json()["status"] == "ACTIVE"

    async def test_update_balance(self, client, admin_headers, alice_cards):
        card_id = alice_cards["b"]["id"]
        response = await client.put(
            f"/admin/cards/{card_id}/balance", headers=admin_headers, json={"newBalance": "42.10"}
        )
        assert response.status_code == 200
        assert Decimal(response.json()["balance"]) == Decimal("42.10")

    async def test_update_balance_negative_rejected(self, client, admin_headers, alice_cards):
        response = await client.put(
            f"/admin/cards/{alice_cards['b']['id']}/balance",
            headers=admin_headers,
            json={"newBalance": "-5.00"},
        )
        assert response.status_code == 400

    async def test_delete_with_balance_fails(self, client, admin_headers, alice_cards):
        card_id = alice_cards["b"]["id"]
        await client.put(
            f"/admin/cards/{card_id}/balance", headers=admin_headers, json={"newBalance": "1.00"}
        )
        response = await client.delete(f"/admin/cards/{card_id}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete card with positive balance"

    async def test_delete_empty_card(self, client, admin_headers, alice_cards):
        card_id = alice_cards["b"]["id"]
        response = await client.delete(f"/admin/cards/{card_id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Card deleted successfully"

        gone = await client.get(f"/admin/cards/{card_id}", headers=admin_headers)
        assert gone.status_code == 404

    async def test_delete_card_with_block_request(self, client, user_headers, admin_headers, alice_cards):
        card_id = alice_cards["b"]["id"]
        await client.post(
            f"/user/cards/{card_id}/block-request",
            headers=user_headers,
            json={"reason": "card was stolen yesterday"},
        )
        response = await client.delete(f"/admin/cards/{card_id}", headers=admin_headers)
        assert response.status_code == 200

        requests = await client.get("/admin/cards/block-requests", headers=admin_headers)
        assert requests.json()["totalElements"] == 0


class TestCardSearch:
    """Filtering, sorting and paging of card listings."""

    async def test_filter_by_status(self, client, admin_headers, alice_cards):
        await client.post(f"/admin/cards/{alice_cards['a']['id']}/block", headers=admin_headers)

        response = await client.get("/admin/cards?status=blocked", headers=admin_headers)
        assert response.status_code == 200
        ids = [c["id"] for c in response.json()["content"]]
        assert ids == [alice_cards["a"]["id"]]

    async def test_invalid_status(self, client, admin_headers):
        response = await client.get("/admin/cards?status=LOST", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid status: 'LOST'. Valid values are: ACTIVE, BLOCKED"

    async def test_filter_by_balance_range(self, client, admin_headers, alice_cards):
        response = await client.get(
            "/admin/cards?minBalance=50&maxBalance=150", headers=admin_headers
        )
        assert [c["id"] for c in response.json()["content"]] == [alice_cards["a"]["id"]]

    async def test_filter_by_holder_name(self, client, user_headers, admin_headers, alice_cards):
        await register(client, "bob")
        await create_card(client, admin_headers, "bob", "4333333333333333")

        response = await client.get("/admin/cards?cardHolderName=bob", headers=admin_headers)
        data = response.json()
        assert data["totalElements"] == 1
        assert data["content"][0]["cardHolderName"] == "BOB TESTER"

    async def test_filter_by_full_card_number(self, client, user_headers, alice_cards):
        response = await client.get(f"/user/cards?cardNumber={CARD_B}", headers=user_headers)
        assert [c["id"] for c in response.json()["content"]] == [alice_cards["b"]["id"]]

    async def test_plaintext_fragment_does_not_match(self, client, user_headers, alice_cards):
        """Partial numbers are compared with ciphertext, so digits alone find nothing."""
        response = await client.get("/user/cards?cardNumber=1111", headers=user_headers)
        assert response.json()["totalElements"] == 0

    async def test_sort_by_balance_ascending(self, client, user_headers, alice_cards):
        response = await client.get(
            "/user/cards?sortBy=balance&sortDirection=asc", headers=user_headers
        )
        balances = [Decimal(c["balance"]) for c in response.json()["content"]]
        assert balances == [Decimal("0.00"), Decimal("100.00")]

    async def test_paging(self, client, user_headers, alice_cards):
        response = await client.get("/user/cards?page=1&size=1", headers=user_headers)
        data = response.json()
        assert data["totalElements"] == 2
        assert data["totalPages"] == 2
        assert data["last"] is True
        assert len(data["content"]) == 1

    async def test_invalid_sort_field(self, client, user_headers):
        response = await client.get("/user/cards?sortBy=secret", headers=user_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid Parameter"

    async def test_invalid_sort_direction(self, client, user_headers):
        response = await client.get("/user/cards?sortDirection=sideways", headers=user_headers)
        assert response.status_code == 400

    async def test_page_size_limits(self, client, user_headers):
        too_big = await client.get("/user/cards?size=101", headers=user_headers)
        assert too_big.status_code == 400
        negative = await client.get("/user/cards?page=-1", headers=user_headers)
        assert negative.status_code == 400

    async def test_admin_list_for_user(self, client, admin_headers, alice_cards):
        response = await client.get("/admin/cards/user/alice", headers=admin_headers)
        assert response.json()["totalElements"] == 2

    async def test_admin_list_for_unknown_user(self, client, admin_headers):
        response = await client.get("/admin/cards/user/ghost", headers=admin_headers)
        assert response.status_code == 404


class TestCardStatistics:

    async def test_statistics(self, client, admin_headers, alice_cards):
        await client.post(f"/admin/cards/{alice_cards['b']['id']}/block", headers=admin_headers)

        response = await client.get("/admin/cards/statistics", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["totalCards"] == 2
        assert data["activeCards"] == 1
        assert data["blockedCards"] == 1
        assert Decimal(data["totalBalance"]) == Decimal("100.00")
        assert Decimal(data["averageBalance"]) == Decimal("50.00")

    async def test_statistics_empty(self, client, admin_headers):
        response = await client.get("/admin/cards/statistics", headers=admin_headers)
        data = response.json()
        assert data["totalCards"] == 0
        assert Decimal(data["averageBalance"]) == Decimal("0.00")

    async def test_user_cannot_see_statistics(self, client, user_headers):
        response = await client.get("/admin/cards/statistics", headers=user_headers)
        assert response.status_code == 403

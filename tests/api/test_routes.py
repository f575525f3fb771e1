from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from formalization.api.app import app
from formalization.api.deps import get_db, get_origination_client

CREDIT = {
    "request_id": 1001,
    "contract_number": "CC-2025-0001",
    "approved_amount": "10000.00",
    "term_months": 12,
    "annual_rate": "12.00",
}

SALE = {
    "request_id": 1001,
    "contract_number": "SC-2025-0001",
    "vehicle_price": "18500.00",
}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_origination_client] = lambda: None
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def instrument(client, **overrides) -> dict:
    resp = await client.post("/api/v1/credit-contracts", json={**CREDIT, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}


# ---- Credit contracts ----

@pytest.mark.asyncio
async def test_instrument_and_read_back(client):
    created = await instrument(client)
    assert created["state"] == "PENDING_SIGNATURE"
    assert created["version"] == 1
    assert Decimal(created["approved_amount"]) == Decimal("10000.00")

    resp = await client.get(f"/api/v1/credit-contracts/{created['id']}")
    assert resp.json()["contract_number"] == "CC-2025-0001"

    resp = await client.get("/api/v1/credit-contracts/by-request/1001")
    assert resp.json()["id"] == created["id"]

    resp = await client.get("/api/v1/credit-contracts/by-number/CC-2025-0001")
    assert resp.json()["id"] == created["id"]

    resp = await client.get("/api/v1/credit-contracts/exists/1001")
    assert resp.json() == {"request_id": 1001, "exists": True}

    notes = (await client.get(f"/api/v1/credit-contracts/{created['id']}/notes")).json()
    assert [n["installment_number"] for n in notes] == list(range(1, 13))
    assert {Decimal(n["amount"]) for n in notes} == {Decimal("888.49")}


@pytest.mark.asyncio
async def test_duplicate_instrumentation(client):
    await instrument(client)
    resp = await client.post("/api/v1/credit-contracts", json={**CREDIT, "contract_number": "CC-OTHER"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["type"] == "AlreadyExistsError"
    assert body["error"]["field"] == "request_id"


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value", [
    ("term_months", 0),
    ("term_months", 121),
    ("approved_amount", "-5.00"),
    ("annual_rate", "100.00"),
    ("contract_number", "X" * 51),
])
async def test_request_validation(client, field, value):
    resp = await client.post("/api/v1/credit-contracts", json={**CREDIT, field: value})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_contract_is_404(client):
    resp = await client.get("/api/v1/credit-contracts/999")
    assert resp.status_code == 404
    assert resp.json()["error"]["entity"] == "CreditContract"


@pytest.mark.asyncio
async def test_sign_then_approve_conflicts(client):
    created = await instrument(client)
    url = f"/api/v1/credit-contracts/{created['id']}"

    resp = await client.post(f"{url}/sign", json={"signed_file_ref": "s3://contracts/cc-1.pdf"})
    assert resp.status_code == 200
    assert resp.json()["state"] == "ACTIVE"

    resp = await client.post(f"{url}/approve-disbursement")
    assert resp.status_code == 409
    assert resp.json()["error"]["current_state"] == "ACTIVE"


@pytest.mark.asyncio
async def test_approve_without_signature_conflicts(client):
    created = await instrument(client)
    resp = await client.post(f"/api/v1/credit-contracts/{created['id']}/approve-disbursement")
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "NotSignedError"


@pytest.mark.asyncio
async def test_payoff_blocked_by_open_notes(client):
    created = await instrument(client, signed_file_ref="s3://contracts/cc-1.pdf")
    url = f"/api/v1/credit-contracts/{created['id']}"
    assert (await client.post(f"{url}/approve-disbursement")).status_code == 200

    resp = await client.post(f"{url}/pay")
    assert resp.status_code == 409
    assert resp.json()["error"]["pending_count"] == 12


@pytest.mark.asyncio
async def test_full_payoff(client):
    created = await instrument(client, approved_amount="300.00", term_months=3, annual_rate="0")
    url = f"/api/v1/credit-contracts/{created['id']}"
    await client.post(f"{url}/sign", json={"signed_file_ref": "s3://contracts/cc-1.pdf"})

    for note in (await client.get(f"{url}/notes")).json():
        resp = await client.post(f"/api/v1/notes/{note['id']}/pay")
        assert resp.json()["state"] == "PAID"

    resp = await client.post(f"{url}/pay")
    assert resp.status_code == 200
    assert resp.json()["state"] == "PAID"

    resp = await client.post(f"{url}/cancel", json={"reason": "too late"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_cancel_records_reason(client):
    created = await instrument(client)
    resp = await client.post(
        f"/api/v1/credit-contracts/{created['id']}/cancel", json={"reason": "client withdrew"}
    )
    body = resp.json()
    assert body["state"] == "CANCELLED"
    assert body["cancellation_reason"] == "client withdrew"
    assert body["cancelled_at"] is not None


@pytest.mark.asyncio
async def test_list_with_filters(client):
    first = await instrument(client)
    await instrument(client, request_id=1002, contract_number="CC-2025-0002")
    await client.post(
        f"/api/v1/credit-contracts/{first['id']}/sign", json={"signed_file_ref": "s3://contracts/cc-1.pdf"}
    )

    body = (await client.get("/api/v1/credit-contracts", params={"state": "ACTIVE"})).json()
    assert [c["id"] for c in body["items"]] == [first["id"]]

    body = (await client.get("/api/v1/credit-contracts", params={"contract_number": "2025-000"})).json()
    assert body["total"] == 2

    body = (await client.get("/api/v1/credit-contracts", params={"size": 1, "page": 1})).json()
    assert body["total"] == 2
    assert body["pages"] == 2
    assert body["has_next"] is False


@pytest.mark.asyncio
async def test_amortization_preview(client):
    created = await instrument(client)
    body = (await client.get(f"/api/v1/credit-contracts/{created['id']}/amortization")).json()
    assert Decimal(body["installment"]) == Decimal("888.49")
    assert len(body["rows"]) == 12
    assert Decimal(body["rows"][-1]["balance"]) == Decimal("0")


# ---- Notes ----

@pytest.mark.asyncio
async def test_note_payment_twice_conflicts(client):
    created = await instrument(client)
    resp = await client.get(f"/api/v1/notes/by-contract/{created['id']}/installment/1")
    note_id = resp.json()["id"]

    assert (await client.post(f"/api/v1/notes/{note_id}/pay")).status_code == 200
    resp = await client.post(f"/api/v1/notes/{note_id}/pay")
    assert resp.status_code == 409
    assert resp.json()["error"]["current_state"] == "PAID"


@pytest.mark.asyncio
async def test_overdue_sweep(client):
    created = await instrument(client)

    resp = await client.get("/api/v1/notes/overdue", params={"as_of": "2100-01-01"})
    assert len(resp.json()) == 12

    resp = await client.post("/api/v1/notes/mark-overdue", params={"as_of": "2100-01-01"})
    assert len(resp.json()) == 12
    assert {n["state"] for n in resp.json()} == {"OVERDUE"}

    resp = await client.post("/api/v1/notes/mark-overdue", params={"as_of": "2100-01-01"})
    assert resp.json() == []

    counts = (await client.get(f"/api/v1/notes/counts/{created['id']}")).json()
    assert counts == {"credit_contract_id": created["id"], "pending": 0, "overdue": 12, "open": 12}

    page = (await client.get("/api/v1/notes/by-state/OVERDUE", params={"size": 5})).json()
    assert page["total"] == 12
    assert len(page["items"]) == 5

    resp = await client.post(f"/api/v1/notes/{page['items'][0]['id']}/pay")
    assert resp.status_code == 409
    assert resp.json()["error"]["current_state"] == "OVERDUE"


@pytest.mark.asyncio
async def test_manual_schedule(client):
    created = await instrument(client)
    payload = {
        "credit_contract_id": created["id"],
        "principal": "1200.00",
        "annual_rate": "0",
        "term_months": 12,
        "start_date": "2025-03-01",
    }
    resp = await client.post("/api/v1/notes/schedule", json=payload)
    # Instrumentation already generated this contract's schedule
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "ScheduleConflictError"

    resp = await client.post("/api/v1/notes/schedule", json={**payload, "credit_contract_id": 999})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_due_soon(client):
    await instrument(client)
    resp = await client.get("/api/v1/notes/due-soon", params={"days": 0, "as_of": "1999-01-01"})
    assert resp.status_code == 200
    assert resp.json() == []


# ---- Sale contracts ----

@pytest.mark.asyncio
async def test_sale_contract_flow(client):
    resp = await client.post("/api/v1/sale-contracts", json=SALE)
    assert resp.status_code == 201
    created = resp.json()
    url = f"/api/v1/sale-contracts/{created['id']}"

    resp = await client.post("/api/v1/sale-contracts", json=SALE)
    assert resp.status_code == 400

    resp = await client.post(f"{url}/sign", json={"signed_file_ref": "s3://sales/sc-1.pdf"})
    assert resp.json()["state"] == "SIGNED"
    assert resp.json()["version"] == 2

    resp = await client.post(f"{url}/sign", json={"signed_file_ref": "s3://sales/sc-1.pdf"})
    assert resp.status_code == 409

    update = {
        "contract_number": "SC-2025-0001-R",
        "vehicle_price": "18250.00",
        "state": "SIGNED",
        "signed_file_ref": "s3://sales/sc-1.pdf",
        "version": 2,
    }
    resp = await client.put(url, json=update)
    assert resp.status_code == 200
    assert resp.json()["version"] == 3
    assert resp.json()["contract_number"] == "SC-2025-0001-R"

    resp = await client.put(url, json=update)
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "StaleVersionError"

    body = (await client.get("/api/v1/sale-contracts/by-state/SIGNED")).json()
    assert body["total"] == 1
    body = (await client.get("/api/v1/sale-contracts", params={"contract_number": "-r"})).json()
    assert [c["id"] for c in body["items"]] == [created["id"]]
    assert (await client.get("/api/v1/sale-contracts/exists/1001")).json()["exists"] is True
    assert (await client.get("/api/v1/sale-contracts/by-request/1001")).status_code == 200
    assert (await client.get("/api/v1/sale-contracts/by-number/SC-2025-0001-R")).status_code == 200

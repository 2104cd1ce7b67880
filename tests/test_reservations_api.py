from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func, select

from conftest import auth_headers, tomorrow_at, utcnow_naive
from parking_api.models import DiscountUsage, Reservation


def _body(lot, start, end, plate="AB-123-C", code=None):
    body = {
        "license_plate": plate,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "parking_lot": lot.id,
    }
    if code is not None:
        body["discount_code"] = code
    return body


async def _count(db, model):
    return await db.scalar(select(func.count()).select_from(model))


async def test_create_without_discount(client, db, user, lot, vehicle):
    start = tomorrow_at(10)
    res = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=auth_headers(user))

    assert res.status_code == 201, res.text
    data = res.json()
    assert data["status"] == "confirmed"
    assert data["vehicle_id"] == vehicle.id
    assert Decimal(data["original_cost"]) == Decimal("10.00")
    assert Decimal(data["discount_amount"]) == 0
    assert Decimal(data["cost"]) == Decimal(data["original_cost"])
    assert data["discount_code"] is None

    stored = await db.get(Reservation, data["id"])
    assert stored is not None
    assert stored.cost == Decimal("10.00")


async def test_create_with_discount_records_usage(client, db, user, lot, vehicle, make_discount):
    discount = await make_discount("SAVE20")
    start = tomorrow_at(10)

    res = await client.post(
        "/reservations",
        json=_body(lot, start, start + timedelta(hours=2), code="  save20 "),
        headers=auth_headers(user),
    )

    assert res.status_code == 201, res.text
    data = res.json()
    assert data["discount_code"] == "SAVE20"
    assert Decimal(data["original_cost"]) == Decimal("10.00")
    assert Decimal(data["discount_amount"]) == Decimal("2.00")
    assert Decimal(data["cost"]) == Decimal("8.00")

    await db.refresh(discount)
    assert discount.current_usage_count == 1

    usage = (await db.execute(select(DiscountUsage))).scalar_one()
    assert usage.reservation_id == data["id"]
    assert usage.user_id == user.id
    assert usage.original_amount == Decimal("10.00")
    assert usage.discount_amount == Decimal("2.00")
    assert usage.final_amount == Decimal("8.00")


async def test_end_before_start_is_rejected_before_pricing(client, db, user, lot, vehicle, make_discount):
    await make_discount("SAVE20")
    now = utcnow_naive()
    res = await client.post(
        "/reservations",
        json=_body(lot, now + timedelta(hours=3), now + timedelta(hours=1), code="SAVE20"),
        headers=auth_headers(user),
    )

    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "invalid_dates"
    assert await _count(db, Reservation) == 0
    assert await _count(db, DiscountUsage) == 0


async def test_missing_fields(client, user, lot, vehicle):
    res = await client.post("/reservations", json={"parking_lot": lot.id}, headers=auth_headers(user))
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "missing_fields"


async def test_overlapping_reservation_conflicts(client, user, lot, vehicle):
    headers = auth_headers(user)
    start = tomorrow_at(10)

    first = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)
    assert first.status_code == 201

    second = await client.post(
        "/reservations",
        json=_body(lot, start + timedelta(hours=1), start + timedelta(hours=3)),
        headers=headers,
    )
    assert second.status_code == 409
    assert second.json()["detail"]["error"] == "reservation_conflict"

    enclosing = await client.post(
        "/reservations",
        json=_body(lot, start - timedelta(hours=1), start + timedelta(hours=3)),
        headers=headers,
    )
    assert enclosing.status_code == 409


async def test_back_to_back_reservations_do_not_conflict(client, user, lot, vehicle):
    headers = auth_headers(user)
    start = tomorrow_at(10)

    first = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)
    assert first.status_code == 201
    second = await client.post(
        "/reservations",
        json=_body(lot, start + timedelta(hours=2), start + timedelta(hours=4)),
        headers=headers,
    )
    assert second.status_code == 201, second.text


async def test_cancelled_reservation_frees_the_window(client, user, lot, vehicle):
    headers = auth_headers(user)
    start = tomorrow_at(10)

    first = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)
    res = await client.post(f"/reservations/{first.json()['id']}/cancel", headers=headers)
    assert res.status_code == 200

    again = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)
    assert again.status_code == 201


async def test_unknown_parking_lot(client, user, vehicle, lot):
    start = tomorrow_at(10)
    body = _body(lot, start, start + timedelta(hours=1))
    body["parking_lot"] = 9999
    res = await client.post("/reservations", json=body, headers=auth_headers(user))
    assert res.status_code == 404
    assert res.json()["detail"]["error"] == "not_found"


async def test_vehicle_of_someone_else(client, other_user, lot, vehicle):
    start = tomorrow_at(10)
    res = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=1)), headers=auth_headers(other_user))
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "vehicle_not_found"


async def test_invalid_discount_blocks_reservation(client, db, user, lot, vehicle, make_discount):
    await make_discount("LOTX", parking_lot_id=lot.id + 1)
    start = tomorrow_at(10)

    res = await client.post(
        "/reservations",
        json=_body(lot, start, start + timedelta(hours=1), code="LOTX"),
        headers=auth_headers(user),
    )
    assert res.status_code == 400
    detail = res.json()["detail"]
    assert detail["error"] == "invalid_discount"
    assert "not valid for this parking lot" in detail["message"]
    assert await _count(db, Reservation) == 0


async def test_usage_limit_applies_across_reservations(client, db, user, lot, vehicle, make_discount):
    discount = await make_discount("ONEOFF", max_usage_count=1)
    headers = auth_headers(user)
    start = tomorrow_at(8)

    first = await client.post(
        "/reservations", json=_body(lot, start, start + timedelta(hours=1), code="ONEOFF"), headers=headers
    )
    assert first.status_code == 201

    later = start + timedelta(hours=5)
    second = await client.post(
        "/reservations", json=_body(lot, later, later + timedelta(hours=1), code="ONEOFF"), headers=headers
    )
    assert second.status_code == 400
    assert "maximum usage limit" in second.json()["detail"]["message"]

    await db.refresh(discount)
    assert discount.current_usage_count == 1
    assert await _count(db, Reservation) == 1


async def test_update_reprices_in_place(client, db, user, lot, vehicle, make_discount):
    await make_discount("HALF", percentage=Decimal("50"))
    headers = auth_headers(user)
    start = tomorrow_at(10)

    created = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)
    reservation_id = created.json()["id"]

    res = await client.put(
        f"/reservations/{reservation_id}",
        json=_body(lot, start, start + timedelta(hours=4), code="half"),
        headers=headers,
    )
    assert res.status_code == 200, res.text
    data = res.json()
    assert data["id"] == reservation_id
    assert Decimal(data["original_cost"]) == Decimal("20.00")
    assert Decimal(data["discount_amount"]) == Decimal("10.00")
    assert Decimal(data["cost"]) == Decimal("10.00")

    assert await _count(db, Reservation) == 1
    usage = (await db.execute(select(DiscountUsage))).scalar_one()
    assert usage.reservation_id == reservation_id


async def test_update_rejects_bad_window(client, user, lot, vehicle):
    headers = auth_headers(user)
    start = tomorrow_at(10)
    created = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)

    res = await client.put(
        f"/reservations/{created.json()['id']}",
        json=_body(lot, start, start - timedelta(hours=1)),
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "invalid_dates"


async def test_cancel_twice(client, db, user, lot, vehicle, make_discount):
    discount = await make_discount("KEEP")
    headers = auth_headers(user)
    start = tomorrow_at(10)
    created = await client.post(
        "/reservations", json=_body(lot, start, start + timedelta(hours=1), code="KEEP"), headers=headers
    )
    reservation_id = created.json()["id"]

    first = await client.post(f"/reservations/{reservation_id}/cancel", headers=headers)
    assert first.status_code == 200

    second = await client.post(f"/reservations/{reservation_id}/cancel", headers=headers)
    assert second.status_code == 400
    assert second.json()["detail"]["error"] == "already_cancelled"

    # usage is not released on cancellation
    await db.refresh(discount)
    assert discount.current_usage_count == 1


async def test_reservation_visibility(client, user, other_user, lot, vehicle):
    start = tomorrow_at(10)
    created = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=1)), headers=auth_headers(user))
    reservation_id = created.json()["id"]

    mine = await client.get("/reservations", headers=auth_headers(user))
    assert [r["id"] for r in mine.json()] == [reservation_id]

    own = await client.get(f"/reservations/{reservation_id}", headers=auth_headers(user))
    assert own.status_code == 200

    foreign = await client.get(f"/reservations/{reservation_id}", headers=auth_headers(other_user))
    assert foreign.status_code == 403

    cancel = await client.post(f"/reservations/{reservation_id}/cancel", headers=auth_headers(other_user))
    assert cancel.status_code == 403

    missing = await client.get("/reservations/does-not-exist", headers=auth_headers(user))
    assert missing.status_code == 404


async def test_requires_authentication(client, lot):
    start = tomorrow_at(10)
    res = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=1)))
    assert res.status_code == 401
    assert res.json()["detail"]["error"] == "unauthorized"


async def test_cancelled_reservation_cannot_be_updated(client, db, user, lot, vehicle, make_discount):
    discount = await make_discount("SAVE20")
    headers = auth_headers(user)
    start = tomorrow_at(10)
    created = await client.post("/reservations", json=_body(lot, start, start + timedelta(hours=2)), headers=headers)
    reservation_id = created.json()["id"]
    await client.post(f"/reservations/{reservation_id}/cancel", headers=headers)

    res = await client.put(
        f"/reservations/{reservation_id}",
        json=_body(lot, start, start + timedelta(hours=4), code="SAVE20"),
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "already_cancelled"

    await db.refresh(discount)
    assert discount.current_usage_count == 0
    assert await _count(db, DiscountUsage) == 0

    stored = await db.get(Reservation, reservation_id)
    assert stored.cost == Decimal("10.00")

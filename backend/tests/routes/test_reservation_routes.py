# backend/tests/routes/test_reservation_routes.py
"""HTTP behaviour of /api/v1/reservations. The venue clock reads 2031-02-01 09:00."""

from fastapi import status

MISSING_ID = "01ARZ3NDEKTSV4RRFFQ69G5FAV"


class TestCreateReservation:
    def test_created_outside_deadline_is_scheduled(
        self, create_reservation, recorded_events
    ) -> None:
        response = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00", notes="Demo")

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["kind"] == "rehearsal"
        assert body["status"] == "scheduled"
        assert body["billable_units"] == 4
        assert body["notes"] == "Demo"
        assert [e.event_type for e in recorded_events] == ["BookingCreated"]

    def test_created_inside_deadline_is_confirmed(self, create_reservation) -> None:
        response = create_reservation("2031-02-03T14:00:00", "2031-02-03T15:00:00")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["status"] == "confirmed"

    def test_explicit_scheduled_inside_deadline_is_confirmed(self, create_reservation) -> None:
        response = create_reservation(
            "2031-02-02T13:00:00", "2031-02-02T15:00:00", status="scheduled"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["status"] == "confirmed"

    def test_can_be_created_reserved(self, create_reservation) -> None:
        response = create_reservation(
            "2031-03-11T14:00:00", "2031-03-11T16:00:00", status="reserved"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["status"] == "reserved"

    def test_overlap_returns_409(self, create_reservation) -> None:
        create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00")

        response = create_reservation(
            "2031-03-11T15:00:00", "2031-03-11T17:00:00", owner_id="member-2"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["code"] == "BOOKING_CONFLICT"

    def test_outside_business_hours_returns_400(self, create_reservation) -> None:
        response = create_reservation("2031-03-11T21:00:00", "2031-03-11T23:00:00")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["details"]["errors"]

    def test_cancelled_status_is_rejected_by_schema(self, create_reservation) -> None:
        response = create_reservation(
            "2031-03-11T14:00:00", "2031-03-11T16:00:00", status="cancelled"
        )

        assert response.status_code == 422

    def test_unknown_fields_are_rejected(self, create_reservation) -> None:
        response = create_reservation(
            "2031-03-11T14:00:00", "2031-03-11T16:00:00", room="B"
        )

        assert response.status_code == 422


class TestReservationLookup:
    def test_get_by_id(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()

        response = client.get(f"/api/v1/reservations/{created['id']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == created["id"]

    def test_missing_reservation_returns_404(self, client) -> None:
        response = client.get(f"/api/v1/reservations/{MISSING_ID}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["code"] == "BOOKING_NOT_FOUND"

    def test_malformed_id_returns_422(self, client) -> None:
        response = client.get("/api/v1/reservations/not-a-ulid")

        assert response.status_code == 422

    def test_list_for_owner(self, client, create_reservation) -> None:
        create_reservation("2031-03-11T10:00:00", "2031-03-11T11:00:00")
        create_reservation("2031-03-12T10:00:00", "2031-03-12T11:00:00")
        create_reservation("2031-03-13T10:00:00", "2031-03-13T11:00:00", owner_id="member-2")

        response = client.get("/api/v1/reservations", params={"owner_id": "member-1"})

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 2

    def test_upcoming_only_hides_cancelled(self, client, create_reservation) -> None:
        kept = create_reservation("2031-03-11T10:00:00", "2031-03-11T11:00:00").json()
        dropped = create_reservation("2031-03-12T10:00:00", "2031-03-12T11:00:00").json()
        client.post(f"/api/v1/reservations/{dropped['id']}/cancel")

        response = client.get(
            "/api/v1/reservations", params={"owner_id": "member-1", "upcoming_only": True}
        )

        assert [b["id"] for b in response.json()] == [kept["id"]]


class TestReservationLifecycle:
    def test_confirm_inside_window(self, client, create_reservation) -> None:
        created = create_reservation("2031-02-05T14:00:00", "2031-02-05T15:00:00").json()
        assert created["status"] == "scheduled"

        response = client.post(f"/api/v1/reservations/{created['id']}/confirm")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "confirmed"
        assert response.json()["confirmed_at"] is not None

    def test_confirm_before_window_opens_returns_422(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()

        response = client.post(f"/api/v1/reservations/{created['id']}/confirm")

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "CONFIRMATION_WINDOW_NOT_OPEN"

    def test_cancel_with_reason_then_again(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()
        url = f"/api/v1/reservations/{created['id']}/cancel"

        first = client.post(url, json={"reason": "Drummer is sick"})
        second = client.post(url)

        assert first.status_code == status.HTTP_200_OK
        assert first.json()["status"] == "cancelled"
        assert first.json()["cancellation_reason"] == "Drummer is sick"
        assert second.status_code == status.HTTP_200_OK
        assert second.json()["cancellation_reason"] == "Drummer is sick"

    def test_cancelled_window_can_be_rebooked(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()
        client.post(f"/api/v1/reservations/{created['id']}/cancel")

        response = create_reservation(
            "2031-03-11T14:00:00", "2031-03-11T16:00:00", owner_id="member-2"
        )

        assert response.status_code == status.HTTP_201_CREATED

    def test_reschedule(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()

        response = client.patch(
            f"/api/v1/reservations/{created['id']}",
            json={"start": "2031-03-12T10:00:00", "end": "2031-03-12T13:00:00"},
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["starts_at"] == "2031-03-12T10:00:00"
        assert body["billable_units"] == 6

    def test_reschedule_onto_another_booking_returns_409(
        self, client, create_reservation
    ) -> None:
        create_reservation("2031-03-12T10:00:00", "2031-03-12T12:00:00", owner_id="member-2")
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()

        response = client.patch(
            f"/api/v1/reservations/{created['id']}",
            json={"start": "2031-03-12T11:00:00", "end": "2031-03-12T13:00:00"},
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_record_payment(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()

        response = client.post(
            f"/api/v1/reservations/{created['id']}/payment", json={"payment_status": "paid"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["payment_status"] == "paid"

    def test_unknown_payment_status_returns_422(self, client, create_reservation) -> None:
        created = create_reservation("2031-03-11T14:00:00", "2031-03-11T16:00:00").json()

        response = client.post(
            f"/api/v1/reservations/{created['id']}/payment", json={"payment_status": "bartered"}
        )

        assert response.status_code == 422

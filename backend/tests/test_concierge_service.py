"""
Concierge tool backends: date parsing, offer search and conversational
offer creation.
"""
from datetime import datetime, timedelta

import pytest

from conftest import CREATOR, MATCHED_USER, STRANGER
from jetshare.exceptions import ValidationError
from jetshare.models.offers import OfferStatus
from jetshare.services import concierge_service, offer_service

NOW = datetime(2030, 1, 10, 9, 30)


class TestParseFlightDate:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("today", datetime(2030, 1, 10, 12, 0)),
            ("Tomorrow", datetime(2030, 1, 11, 12, 0)),
            ("next week", datetime(2030, 1, 17, 12, 0)),
            ("2030-02-01", datetime(2030, 2, 1, 12, 0)),
            ("2030-02-01T08:15:00", datetime(2030, 2, 1, 8, 15)),
        ],
    )
    def test_dates(self, value, expected):
        assert concierge_service.parse_flight_date(value, now=NOW) == expected

    @pytest.mark.parametrize(
        "time_of_day,hour,minute",
        [("14:30", 14, 30), ("2:30 pm", 14, 30), ("12:00 am", 0, 0), ("9:05am", 9, 5)],
    )
    def test_time_of_day(self, time_of_day, hour, minute):
        parsed = concierge_service.parse_flight_date("tomorrow", time_of_day, now=NOW)

        assert (parsed.hour, parsed.minute) == (hour, minute)
        assert parsed.date() == datetime(2030, 1, 11).date()

    @pytest.mark.parametrize("value,time_of_day", [("someday", None), ("tomorrow", "noonish"), ("", None)])
    def test_unreadable_input(self, value, time_of_day):
        with pytest.raises(ValidationError):
            concierge_service.parse_flight_date(value, time_of_day, now=NOW)


class TestFindOffers:

    @pytest.fixture
    async def seeded(self, db, offer_payload):
        miami = await offer_service.create_offer(
            db, CREATOR, offer_payload(flight_date=NOW + timedelta(days=3))
        )
        aspen = await offer_service.create_offer(
            db,
            CREATOR,
            offer_payload(
                flight_date=NOW + timedelta(days=20),
                arrival_location="KASE",
                requested_share_amount_cents=300000,
            ),
        )
        past = await offer_service.create_offer(db, CREATOR, offer_payload(flight_date=NOW - timedelta(days=1)))
        own = await offer_service.create_offer(db, STRANGER, offer_payload(flight_date=NOW + timedelta(days=2)))
        taken = await offer_service.create_offer(db, CREATOR, offer_payload(flight_date=NOW + timedelta(days=4)))
        await offer_service.accept_offer(db, taken.id, MATCHED_USER)
        return {"miami": miami, "aspen": aspen, "past": past, "own": own, "taken": taken}

    async def test_only_future_open_offers_of_others(self, db, seeded):
        found = await concierge_service.find_jetshare_offers(db, STRANGER, now=NOW)

        assert [offer["id"] for offer in found] == [seeded["miami"].id, seeded["aspen"].id]

    async def test_location_matches_either_end_case_insensitively(self, db, seeded):
        by_arrival = await concierge_service.find_jetshare_offers(db, STRANGER, location="kase", now=NOW)
        by_departure = await concierge_service.find_jetshare_offers(db, STRANGER, location="KTEB", now=NOW)

        assert [offer["id"] for offer in by_arrival] == [seeded["aspen"].id]
        assert len(by_departure) == 2

    async def test_budget_and_window_filters(self, db, seeded):
        cheap = await concierge_service.find_jetshare_offers(db, STRANGER, max_share_cents=400000, now=NOW)
        soon = await concierge_service.find_jetshare_offers(db, STRANGER, within_days=7, now=NOW)

        assert [offer["id"] for offer in cheap] == [seeded["aspen"].id]
        assert [offer["id"] for offer in soon] == [seeded["miami"].id]

    async def test_results_are_capped(self, db, offer_payload):
        for day in range(concierge_service.MAX_SEARCH_RESULTS + 3):
            await offer_service.create_offer(db, CREATOR, offer_payload(flight_date=NOW + timedelta(days=day + 1)))

        found = await concierge_service.find_jetshare_offers(db, STRANGER, now=NOW)

        assert len(found) == concierge_service.MAX_SEARCH_RESULTS

    async def test_summary_shape(self, db, seeded):
        found = await concierge_service.find_jetshare_offers(db, STRANGER, location="KMIA", now=NOW)

        assert found[0]["departure"] == "KTEB"
        assert found[0]["requested_share_amount_cents"] == 500000
        assert found[0]["aircraft_model"] == "Gulfstream G650"


class TestCreateOffer:

    async def test_share_defaults_to_half(self, db):
        offer = await concierge_service.create_jetshare_offer(
            db,
            CREATOR,
            departure_location="KVNY",
            arrival_location="KLAS",
            flight_date="2030-03-01",
            total_flight_cost_cents=800001,
            departure_time="3:45 pm",
        )

        assert offer.status == OfferStatus.OPEN
        assert offer.requested_share_amount_cents == 400000
        assert offer.flight_date == datetime(2030, 3, 1, 15, 45)

    async def test_invalid_fields_raise(self, db):
        with pytest.raises(ValidationError):
            await concierge_service.create_jetshare_offer(
                db,
                CREATOR,
                departure_location="KVNY",
                arrival_location="",
                flight_date="tomorrow",
                total_flight_cost_cents=800000,
            )

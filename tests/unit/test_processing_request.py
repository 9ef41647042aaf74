"""Unit tests for the client-to-engine request mapping."""

from routeoptimizer.schemas import POI, RouteOptimizationRequest
from routeoptimizer.services.processing_request import (
    DEFAULT_USER_ID,
    build_processing_poi,
    build_processing_request,
)


class TestBuildProcessingPOI:
    def test_defaults_fill_missing_fields(self):
        poi = build_processing_poi(POI(), position=3)

        assert poi.id == 3
        assert poi.name == "POI 3"
        assert poi.latitude == 10.501
        assert poi.longitude == -84.697
        assert poi.categories == ["tourism"]
        assert poi.visit_duration == 60
        assert poi.cost == 50.0
        assert poi.rating == 4.0
        assert poi.accessibility is True

    def test_cost_from_price_level(self):
        assert build_processing_poi(POI(price_level=3), position=1).cost == 30.0

    def test_explicit_values_kept(self):
        poi = build_processing_poi(
            POI(id=9, name="Museum", latitude=1.0, longitude=2.0, cost=12.5, provider_id=4),
            position=1,
        )

        assert (poi.id, poi.name, poi.latitude, poi.longitude) == (9, "Museum", 1.0, 2.0)
        assert poi.cost == 12.5
        assert poi.provider_name == "Provider-4"


class TestBuildProcessingRequest:
    def test_default_preferences_and_constraints(self, route_request):
        body = build_processing_request(route_request)

        assert body.route_id == "route-1"
        assert body.user_id == "user-1"
        assert [p.id for p in body.pois] == [1, 2, 3]
        assert body.preferences.optimize_for == "distance"
        assert body.preferences.max_total_time == 720
        assert body.constraints.start_time == "09:00"
        assert body.constraints.lunch_break_required is True

    def test_client_preferences_win(self, make_payload):
        request = RouteOptimizationRequest.model_validate(
            make_payload(
                max_travel_time=300,
                preferences={"optimize_for": "time"},
                constraints={"start_time": "08:30", "lunch_break_required": False},
            )
        )

        body = build_processing_request(request)

        assert body.preferences.optimize_for == "time"
        assert body.preferences.max_total_time == 300
        assert body.constraints.start_time == "08:30"
        assert body.constraints.lunch_break_required is False
        assert body.constraints.lunch_break_duration == 60

    def test_missing_identifiers(self):
        body = build_processing_request(RouteOptimizationRequest(pois=[{"name": "A"}]))

        assert body.user_id == DEFAULT_USER_ID
        assert body.route_id

"""Mapping from a client submission to the engine request body."""

import uuid

from routeoptimizer.schemas.requests import (
    POI,
    ProcessingConstraints,
    ProcessingPOI,
    ProcessingPreferences,
    RouteOptimizationRequest,
    RouteProcessingRequest,
)

DEFAULT_USER_ID = "system-user"
DEFAULT_LATITUDE = 10.501
DEFAULT_LONGITUDE = -84.697
DEFAULT_MAX_TOTAL_TIME = 720


def _poi_cost(poi: POI) -> float:
    if poi.cost is not None:
        return poi.cost
    if poi.price_level is not None:
        return poi.price_level * 10.0
    return 50.0


def _provider_name(poi: POI) -> str:
    if poi.provider_name:
        return poi.provider_name
    if poi.provider_id is not None:
        return f"Provider-{poi.provider_id}"
    return "Unknown provider"


def build_processing_poi(poi: POI, position: int) -> ProcessingPOI:
    """Fill every optional POI field the engine requires. ``position`` is 1-based."""
    return ProcessingPOI(
        id=poi.id if poi.id is not None else position,
        name=poi.name or f"POI {position}",
        latitude=poi.latitude if poi.latitude is not None else DEFAULT_LATITUDE,
        longitude=poi.longitude if poi.longitude is not None else DEFAULT_LONGITUDE,
        categories=poi.categories or ["tourism"],
        category=poi.category or "Tourism",
        subcategory=poi.subcategory or "service",
        visit_duration=poi.visit_duration if poi.visit_duration is not None else 60,
        cost=_poi_cost(poi),
        rating=poi.rating if poi.rating is not None else 4.0,
        description=poi.description,
        opening_hours=poi.opening_hours,
        image_url=poi.image_url,
        accessibility=poi.accessibility if poi.accessibility is not None else True,
        provider_id=poi.provider_id,
        provider_name=_provider_name(poi),
    )


def build_processing_request(request: RouteOptimizationRequest) -> RouteProcessingRequest:
    """Pure mapping; missing optional fields get engine defaults."""
    prefs = request.preferences
    if prefs is not None:
        preferences = ProcessingPreferences(
            optimize_for=prefs.optimize_for or "distance",
            max_total_time=prefs.max_total_time or request.max_travel_time,
            max_total_cost=prefs.max_total_cost,
            preferred_categories=prefs.preferred_categories,
            avoid_categories=prefs.avoid_categories,
            accessibility_required=bool(prefs.accessibility_required),
        )
    else:
        preferences = ProcessingPreferences(
            max_total_time=request.max_travel_time or DEFAULT_MAX_TOTAL_TIME,
        )

    constraints = ProcessingConstraints(
        start_location=request.start_location,
        end_location=request.end_location,
    )
    if request.constraints is not None:
        c = request.constraints
        if c.start_time is not None:
            constraints.start_time = c.start_time
        if c.lunch_break_required is not None:
            constraints.lunch_break_required = c.lunch_break_required
        if c.lunch_break_duration is not None:
            constraints.lunch_break_duration = c.lunch_break_duration

    return RouteProcessingRequest(
        route_id=request.route_id or str(uuid.uuid4()),
        user_id=request.user_id or DEFAULT_USER_ID,
        pois=[build_processing_poi(poi, i) for i, poi in enumerate(request.pois, start=1)],
        preferences=preferences,
        constraints=constraints,
    )

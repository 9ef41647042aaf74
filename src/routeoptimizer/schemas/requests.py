"""Submission and downstream-engine request schemas."""

from typing import Literal

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# Client submission
# ─────────────────────────────────────────────────────────────────────────────

class Location(BaseModel):
    latitude: float
    longitude: float


class POI(BaseModel):
    """A point of interest, already enriched with provider/catalog data."""
    id: int | None = None
    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    category: str | None = None
    categories: list[str] | None = None
    subcategory: str | None = None
    rating: float | None = None
    visit_duration: int | None = Field(default=None, description="Minutes")
    opening_hours: str | None = None
    price_level: int | None = Field(default=None, ge=1, le=4)
    cost: float | None = None
    description: str | None = None
    image_url: str | None = None
    accessibility: bool | None = None
    provider_id: int | None = None
    provider_name: str | None = None
    services: str | None = None


class RoutePreferences(BaseModel):
    optimize_for: Literal["time", "distance", "cost"] | None = None
    avoid_tolls: bool | None = None
    transport_mode: Literal["driving", "walking", "transit"] | None = None
    max_total_time: int | None = Field(default=None, description="Minutes")
    max_total_cost: float | None = None
    preferred_categories: list[str] | None = None
    avoid_categories: list[str] | None = None
    accessibility_required: bool | None = None


class RouteConstraints(BaseModel):
    start_time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    lunch_break_required: bool | None = None
    lunch_break_duration: int | None = Field(default=None, ge=0)


class RouteOptimizationRequest(BaseModel):
    """
    A route optimization submission.

    The POI list may arrive empty at the schema level; the orchestrator rejects
    it with a 400 so the client gets the documented error code.
    """
    route_id: str | None = None
    user_id: str | None = None
    pois: list[POI] = Field(default_factory=list)
    start_location: Location | None = None
    end_location: Location | None = None
    max_travel_time: int | None = Field(default=None, description="Minutes")
    preferences: RoutePreferences | None = None
    constraints: RouteConstraints | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Downstream engine request
# ─────────────────────────────────────────────────────────────────────────────

class ProcessingPOI(BaseModel):
    id: int
    name: str
    latitude: float
    longitude: float
    categories: list[str]
    category: str
    subcategory: str
    visit_duration: int
    cost: float
    rating: float
    description: str | None = None
    opening_hours: str | None = None
    image_url: str | None = None
    accessibility: bool
    provider_id: int | None = None
    provider_name: str


class ProcessingPreferences(BaseModel):
    optimize_for: str = "distance"
    max_total_time: int | None = None
    max_total_cost: float | None = None
    preferred_categories: list[str] | None = None
    avoid_categories: list[str] | None = None
    group_size: int = 1
    tourist_type: str = "custom"
    accessibility_required: bool = False
    adventure_level: float = 50.0
    cost_sensitivity: float = 50.0
    sustainability_min: float = 60.0
    max_distance_km: float = 80.0


class ProcessingConstraints(BaseModel):
    start_location: Location | None = None
    end_location: Location | None = None
    start_time: str = "09:00"
    lunch_break_required: bool = True
    lunch_break_duration: int = 60


class RouteProcessingRequest(BaseModel):
    """Body sent to the optimization engine."""
    route_id: str
    user_id: str
    pois: list[ProcessingPOI]
    preferences: ProcessingPreferences
    constraints: ProcessingConstraints

"""
Job result shapes.

A completed job carries exactly one of two results: the payload the engine
returned, or a synthesized fallback when the engine was unreachable. The
``kind`` field discriminates them both in memory and in the stored JSON.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class ResultSummary(BaseModel):
    """Compact view of a result, used in events and route listings."""
    optimized_route_id: str | None = None
    stops: int = 0
    total_distance_km: float | None = None
    total_time_minutes: int | None = None
    optimization_algorithm: str | None = None
    optimization_score: float | None = None
    degraded: bool = False


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


class EngineResult(BaseModel):
    """Opaque result returned by the optimization engine."""
    kind: Literal["engine"] = "engine"
    degraded: Literal[False] = False
    payload: dict[str, Any]
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def sequence(self) -> list[Any]:
        seq = _first(self.payload, "optimized_sequence", "optimizedSequence", "route")
        return seq if isinstance(seq, list) else []

    def summarize(self) -> ResultSummary:
        p = self.payload
        distance = _first(p, "total_distance_km", "totalDistanceKm", "totalDistance")
        minutes = _first(p, "total_time_minutes", "totalTimeMinutes", "totalDuration")
        score = _first(p, "optimization_score", "optimizationScore")
        return ResultSummary(
            optimized_route_id=_first(p, "optimized_route_id", "optimizedRouteId", "route_id", "routeId"),
            stops=len(self.sequence),
            total_distance_km=float(distance) if isinstance(distance, (int, float)) else None,
            total_time_minutes=int(minutes) if isinstance(minutes, (int, float)) else None,
            optimization_algorithm=_first(p, "optimization_algorithm", "optimizationAlgorithm", "algorithm"),
            optimization_score=float(score) if isinstance(score, (int, float)) else None,
        )


class FallbackStop(BaseModel):
    poi_id: int | None = None
    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    visit_order: int
    estimated_visit_time: int | None = None


class FallbackResult(BaseModel):
    """Degraded result synthesized locally; POIs keep their submitted order."""
    kind: Literal["fallback"] = "fallback"
    degraded: Literal[True] = True
    optimized_route_id: str
    optimized_sequence: list[FallbackStop] = Field(default_factory=list)
    total_distance_km: float = 0.0
    total_time_minutes: int = 0
    optimization_algorithm: str = "Fallback-Algorithm"
    optimization_score: float = 0.0
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    note: str = "Result generated by the fallback algorithm; route was not optimized"

    @property
    def sequence(self) -> list[FallbackStop]:
        return self.optimized_sequence

    def summarize(self) -> ResultSummary:
        return ResultSummary(
            optimized_route_id=self.optimized_route_id,
            stops=len(self.optimized_sequence),
            total_distance_km=self.total_distance_km,
            total_time_minutes=self.total_time_minutes,
            optimization_algorithm=self.optimization_algorithm,
            optimization_score=self.optimization_score,
            degraded=True,
        )


JobResult = Annotated[EngineResult | FallbackResult, Field(discriminator="kind")]

job_result_adapter: TypeAdapter[EngineResult | FallbackResult] = TypeAdapter(JobResult)


def dump_result(result: EngineResult | FallbackResult) -> str:
    """Serialize a result for storage."""
    return job_result_adapter.dump_json(result).decode()


def load_result(raw: str | bytes) -> EngineResult | FallbackResult:
    """Parse a stored result back into its tagged shape."""
    return job_result_adapter.validate_json(raw)

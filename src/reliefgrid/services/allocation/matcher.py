"""Candidate search and ranking for resource requests.

The matcher only reads. Anything it returns may be stale by the time an
allocation is attempted, so the transaction manager re-checks under lock.
"""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ...errors import InvalidCoordinate, NoCandidatesWithinRadius, NoCategoryMatch, ValidationError
from ...models.domain import Candidate, ResolvedLocation, ResourceStatus, Suggestion
from ...persistence.tables import RequestRow, ResourceRow
from ..categories import compatible_categories
from ..geospatial import haversine_km, travel_time_minutes
from ..locations import resolve_location

logger = logging.getLogger(__name__)


def required_quantity(request: RequestRow) -> int:
    quantity = request.quantity_requested
    if quantity is None or quantity < 1:
        raise ValidationError(f"Request {request.id} has no positive quantity requested")
    return quantity


def _to_candidate(resource: ResourceRow, location: ResolvedLocation, minutes_per_km: float | None) -> Candidate:
    distance = haversine_km(location.latitude, location.longitude, resource.latitude, resource.longitude)
    return Candidate(
        resource_id=resource.id,
        name=resource.name,
        code=resource.code,
        category=resource.category,
        quantity_available=resource.quantity_available,
        priority_weight=resource.priority_weight,
        created_at=resource.created_at,
        distance_km=distance,
        travel_time_minutes=travel_time_minutes(distance, minutes_per_km),
    )


def rank_candidates(candidates: Sequence[Candidate]) -> list[Candidate]:
    """Nearest first, then higher priority weight, then older resource, then id."""
    return sorted(candidates, key=Candidate.sort_key)


class ResourceMatcher:
    def __init__(self, minutes_per_km: float | None = None) -> None:
        self.minutes_per_km = minutes_per_km

    def candidates(self, session: Session, request: RequestRow) -> list[Candidate]:
        location = resolve_location(session, request)
        quantity = required_quantity(request)
        categories = compatible_categories(request.category)
        if not categories:
            raise NoCategoryMatch(f"Request {request.id} has no category")

        resources = session.scalars(
            select(ResourceRow).where(
                ResourceRow.category.in_(categories),
                ResourceRow.status == ResourceStatus.ACTIVE,
                ResourceRow.quantity_available >= quantity,
            )
        ).all()
        if not resources:
            raise NoCategoryMatch(f"No active resources available for category {request.category}")

        within_radius: list[Candidate] = []
        for resource in resources:
            try:
                candidate = _to_candidate(resource, location, self.minutes_per_km)
            except InvalidCoordinate as exc:
                logger.warning(f"Skipping resource {resource.code} with invalid coordinates: {exc}")
                continue
            if candidate.distance_km <= resource.max_distance_km:
                within_radius.append(candidate)

        if not within_radius:
            raise NoCandidatesWithinRadius(
                f"No resources found within maximum distance limits for request {request.id}"
            )
        return rank_candidates(within_radius)

    def best(self, session: Session, request: RequestRow) -> Candidate:
        return self.candidates(session, request)[0]

    def suggest(self, session: Session, request: RequestRow, limit: int) -> list[Suggestion]:
        ranked = self.candidates(session, request)
        return [
            Suggestion(
                resource_id=candidate.resource_id,
                name=candidate.name,
                code=candidate.code,
                category=candidate.category,
                quantity_available=candidate.quantity_available,
                distance_km=candidate.distance_km,
                travel_time_minutes=candidate.travel_time_minutes,
                priority_score=candidate.priority_weight,
                is_best_match=index == 0,
            )
            for index, candidate in enumerate(ranked[:limit])
        ]

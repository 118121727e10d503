"""Resolve where a request has to be served."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import LocationUnresolved
from ..models.domain import ResolvedLocation
from ..persistence.tables import RequestRow, ZoneRow
from .geospatial import validate_coordinate, zone_containing

logger = logging.getLogger(__name__)


def resolve_location(session: Session, request: RequestRow) -> ResolvedLocation:
    """Coordinates for ``request`` from its named zone or its inline point.

    Inline points without an area name inherit the name of the zone whose
    boundary contains them, when there is one.
    """
    if request.zone_id:
        zone = session.get(ZoneRow, request.zone_id)
        if zone is None:
            raise LocationUnresolved(f"Zone '{request.zone_id}' of request {request.id} not found")
        validate_coordinate(zone.latitude, zone.longitude)
        return ResolvedLocation(
            latitude=zone.latitude,
            longitude=zone.longitude,
            area=request.area or zone.name,
            zone_id=zone.id,
        )

    if request.latitude is None or request.longitude is None:
        raise LocationUnresolved(f"Request {request.id} has neither a zone nor coordinates")

    validate_coordinate(request.latitude, request.longitude)
    area = request.area
    zone_id = None
    if not area:
        zones = session.scalars(select(ZoneRow).where(ZoneRow.is_active.is_(True))).all()
        zone = zone_containing(request.latitude, request.longitude, zones)
        if zone is not None:
            area = zone.name
            zone_id = zone.id
            logger.debug(f"Request {request.id} falls inside zone '{zone.name}'")
    return ResolvedLocation(latitude=request.latitude, longitude=request.longitude, area=area, zone_id=zone_id)


def resolve_area(session: Session, request: RequestRow) -> str | None:
    """Area name used for complaint routing; ``None`` when nothing identifies one."""
    if request.area and request.area.strip():
        return request.area
    try:
        return resolve_location(session, request).area
    except LocationUnresolved:
        return None

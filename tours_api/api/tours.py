from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from tours_api.core.deps import restrict_to
from tours_api.db.session import get_db
from tours_api.models.tour import Tour
from tours_api.models.user import Role
from tours_api.schemas.tours import TourCreate, TourPatch
from tours_api.services.query_features import QueryFeatures, parse_query_params
from tours_api.services.serializers import tour_to_dict
from tours_api.services.tour_reports import monthly_plan, tour_stats
from tours_api.services.tours import create_tour, delete_tour, get_visible_tour, update_tour, visible_tours_query

router = APIRouter()

TOP_CHEAP_TOURS_PRESET = {
    "limit": "5",
    "sort": "-ratingsAverage,price",
    "fields": "name,price,ratingsAverage,summary,difficulty",
}

tour_editors = restrict_to(Role.ADMIN, Role.LEAD_GUIDE)


def _list_tours(db: Session, query_params: dict[str, Any]) -> dict:
    features = (
        QueryFeatures(visible_tours_query(db), Tour, query_params)
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    rows = features.query.all()
    return {
        "status": "success",
        "results": len(rows),
        "data": {"tours": [tour_to_dict(row, features.output_fields) for row in rows]},
    }


@router.get("")
def get_all_tours(request: Request, db: Session = Depends(get_db)):
    return _list_tours(db, parse_query_params(request.query_params.multi_items()))


@router.get("/top-5-cheap-tours")
def get_top_cheap_tours(request: Request, db: Session = Depends(get_db)):
    query_params = parse_query_params(request.query_params.multi_items())
    query_params.update(TOP_CHEAP_TOURS_PRESET)
    return _list_tours(db, query_params)


@router.get("/tour-stats")
def get_tour_stats(db: Session = Depends(get_db)):
    return {"status": "success", "data": {"stats": tour_stats(db)}}


@router.get("/monthly-plan/{year}")
def get_monthly_plan(year: int, db: Session = Depends(get_db)):
    return {"status": "success", "data": {"plan": monthly_plan(db, year)}}


@router.post("", status_code=201)
def post_tour(payload: TourCreate, db: Session = Depends(get_db), user=Depends(tour_editors)):
    tour = create_tour(db, payload)
    return {"status": "success", "data": {"tour": tour_to_dict(tour)}}


@router.get("/{id}")
def get_tour(id: str, db: Session = Depends(get_db)):
    return {"status": "success", "data": {"tour": tour_to_dict(get_visible_tour(db, id))}}


@router.patch("/{id}")
def patch_tour(id: str, payload: TourPatch, db: Session = Depends(get_db), user=Depends(tour_editors)):
    tour = update_tour(db, id, payload)
    return {"status": "success", "data": {"tour": tour_to_dict(tour)}}


@router.delete("/{id}", status_code=204)
def remove_tour(id: str, db: Session = Depends(get_db), user=Depends(tour_editors)):
    delete_tour(db, id)
    return Response(status_code=204)

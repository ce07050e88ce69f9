from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ..container import Services
from ..deps import get_current_user, get_services
from ..domain.errors import StoreUnavailableError
from ..domain.services import Identity
from ..schemas import ClassDetail, ClassSession, CourseTemplate
from ..usecases.classes import ClassFilters, TimeOfDay

router = APIRouter(prefix="", tags=["classes"])


@router.get("/courses", response_model=List[CourseTemplate])
async def list_courses(services: Services = Depends(get_services)) -> list[CourseTemplate]:
    try:
        return await services.catalog.list_courses()
    except StoreUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="failed to fetch courses")


@router.get("/classes", response_model=List[ClassSession])
async def list_classes(
    name: Optional[str] = Query(default=None, description="Matches class type or instructor"),
    day_of_week: Optional[str] = Query(default=None, alias="dayOfWeek"),
    time_of_day: Optional[TimeOfDay] = Query(default=None, alias="timeOfDay"),
    course_key: Optional[str] = Query(default=None, alias="courseKey"),
    services: Services = Depends(get_services),
) -> list[ClassSession]:
    filters = ClassFilters(name=name, day_of_week=day_of_week, time_of_day=time_of_day, course_key=course_key)
    try:
        return await services.catalog.list_classes_with_courses(filters)
    except StoreUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="failed to fetch classes")


@router.get("/classes/{class_key}", response_model=ClassDetail)
async def get_class(
    class_key: str = Path(..., min_length=1),
    services: Services = Depends(get_services),
    user: Identity = Depends(get_current_user),
) -> ClassDetail:
    try:
        session = await services.catalog.get_class(class_key)
        if session is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="class not found")
        booked = await services.ledger.is_booked(user.user_id, class_key)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid class key")
    except StoreUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="failed to fetch class")
    return ClassDetail(**session.model_dump(), is_booked=booked)

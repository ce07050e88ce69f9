import asyncio
import logging
from typing import AsyncIterator, Callable

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response, status
from fastapi.responses import StreamingResponse

from ..container import Services
from ..deps import get_current_user, get_services
from ..domain.errors import (
    AlreadyBookedError,
    ClassFullError,
    ClassNotBookableError,
    ClassNotFoundError,
    CourseNotFoundError,
    NotAuthenticatedError,
    StoreUnavailableError,
)
from ..domain.services import Identity
from ..schemas import Booking, BookingFeed, LoadingState
from ..usecases.live_bookings import LiveBookingAggregator, load_user_bookings
from ..utils.audit_log import emit_audit_log
from ..utils.sse import KEEPALIVE, format_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["bookings"])


@router.post("/classes/{class_key}/booking", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def book_class(
    class_key: str = Path(..., min_length=1),
    services: Services = Depends(get_services),
    user: Identity = Depends(get_current_user),
) -> Booking:
    try:
        booking = await services.ledger.book(user, class_key)
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid class key")
    except ClassNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="class not found")
    except ClassNotBookableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ClassFullError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="class is fully booked")
    except AlreadyBookedError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="you have already booked this class")
    except CourseNotFoundError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="course for this class is missing")
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))

    try:
        emit_audit_log(
            action="booking.created",
            initiator="user",
            booking_id=booking.id,
            class_key=class_key,
            user_id=user.user_id,
            class_status=booking.class_status,
        )
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failure")
    return booking


@router.delete("/classes/{class_key}/booking", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_booking(
    class_key: str = Path(..., min_length=1),
    services: Services = Depends(get_services),
    user: Identity = Depends(get_current_user),
) -> Response:
    try:
        await services.ledger.cancel(user, class_key)
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid class key")
    except StoreUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="failed to cancel the booking; please try again",
        )

    try:
        emit_audit_log(action="booking.cancelled", initiator="user", class_key=class_key, user_id=user.user_id)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failure")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me/bookings", response_model=BookingFeed)
async def list_my_bookings(
    services: Services = Depends(get_services),
    user: Identity = Depends(get_current_user),
) -> BookingFeed:
    try:
        bookings = await load_user_bookings(services.store, user.user_id)
    except StoreUnavailableError as exc:
        return BookingFeed(bookings=[], loading=LoadingState(is_loading=False, error=str(exc)))
    return BookingFeed(bookings=bookings, loading=LoadingState(is_loading=False))


def _keep_latest(queue: "asyncio.Queue[list[Booking]]") -> Callable[[list[Booking]], None]:
    """Listener that leaves only the newest snapshot in a single-slot queue."""

    def publish(bookings: list[Booking]) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(bookings)

    return publish


@router.get("/me/bookings/stream")
async def stream_my_bookings(
    request: Request,
    services: Services = Depends(get_services),
    user: Identity = Depends(get_current_user),
) -> StreamingResponse:
    queue: asyncio.Queue[list[Booking]] = asyncio.Queue(maxsize=1)
    aggregator = LiveBookingAggregator(services.store, user.user_id, listener=_keep_latest(queue))
    try:
        await aggregator.start()
    except StoreUnavailableError:
        aggregator.close()
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="failed to subscribe to bookings")

    ping_seconds = services.settings.sse_ping_seconds

    async def events() -> AsyncIterator[str]:
        try:
            while not await request.is_disconnected():
                try:
                    bookings = await asyncio.wait_for(queue.get(), timeout=ping_seconds)
                except asyncio.TimeoutError:
                    yield KEEPALIVE
                    continue
                yield format_event(
                    "bookings",
                    [booking.model_dump(by_alias=True, mode="json") for booking in bookings],
                )
        finally:
            aggregator.close()
            logger.info("booking stream closed for user %s", user.user_id)

    return StreamingResponse(events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})

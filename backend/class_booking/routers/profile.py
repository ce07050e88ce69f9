from fastapi import APIRouter, Depends, HTTPException, status

from ..container import Services
from ..deps import get_current_user, get_services
from ..domain.errors import StoreUnavailableError
from ..domain.paths import user_profile_path
from ..domain.services import Identity
from ..schemas import ProfileRead, ProfileUpdate
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/me", tags=["profile"])


@router.patch("/profile", response_model=ProfileRead)
async def update_profile(
    payload: ProfileUpdate,
    services: Services = Depends(get_services),
    user: Identity = Depends(get_current_user),
) -> ProfileRead:
    try:
        await services.store.update({f"{user_profile_path(user.user_id)}/displayName": payload.display_name})
    except StoreUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="failed to update profile")

    # Booking copies of the name are best effort; the profile write above is what counts.
    await services.denormalizer.propagate_name_change(user.user_id, payload.display_name)

    try:
        emit_audit_log(action="profile.renamed", initiator="user", user_id=user.user_id)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failure")
    return ProfileRead(user_id=user.user_id, display_name=payload.display_name)

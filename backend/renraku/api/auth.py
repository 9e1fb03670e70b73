from fastapi import APIRouter, Depends

from renraku.api.deps import get_current_claims, get_current_user, get_identity
from renraku.models.user import User
from renraku.schemas.auth import ClaimsResponse, EnrollRequest, SessionResponse, StaffLoginRequest
from renraku.schemas.user import UserResponse
from renraku.services.identity import IdentityService, SessionClaims

router = APIRouter(prefix="/auth", tags=["auth"])


def _session_response(identity: IdentityService, user: User) -> SessionResponse:
    credential = identity.issue_session(user)
    return SessionResponse(
        access_token=credential.token,
        token_type="bearer",
        expires_at=credential.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post("/enroll", response_model=SessionResponse)
async def enroll(data: EnrollRequest, identity: IdentityService = Depends(get_identity)) -> SessionResponse:
    """Guardian sign-in. First visit needs a code; later visits only the external id."""
    user = identity.enroll(data.external_id, data.display_name, data.code)
    return _session_response(identity, user)


@router.post("/staff-login", response_model=SessionResponse)
async def staff_login(data: StaffLoginRequest, identity: IdentityService = Depends(get_identity)) -> SessionResponse:
    user = identity.authenticate_staff(data.username, data.password)
    return _session_response(identity, user)


@router.post("/verify", response_model=ClaimsResponse)
async def verify(claims: SessionClaims = Depends(get_current_claims)) -> ClaimsResponse:
    return ClaimsResponse(
        user_id=claims.user_id,
        role=claims.role,
        student_id=claims.student_id,
        expires_at=claims.expires_at,
    )


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)) -> dict:
    # Credentials are stateless; the client drops its copy
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)

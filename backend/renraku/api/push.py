"""
Web Push subscription storage.

GET    /push/vapid-public-key: the VAPID public key for frontend subscription
POST   /push/subscribe: store the current user's subscription, replacing any earlier one
DELETE /push/unsubscribe: remove it

Delivery of push notifications is handled outside this service.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from renraku.api.deps import get_current_user
from renraku.config import settings
from renraku.database import get_db
from renraku.models.push_subscription import PushSubscription
from renraku.models.user import User

router = APIRouter(prefix="/push", tags=["push"])


class PushKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=1000)
    keys: PushKeys


@router.get("/vapid-public-key")
async def get_vapid_public_key() -> dict:
    """Return the VAPID public key so the frontend can subscribe."""
    return {"key": settings.VAPID_PUBLIC_KEY}


@router.post("/subscribe")
async def subscribe(
    data: PushSubscribeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    existing = db.query(PushSubscription).filter_by(user_id=current_user.id).first()
    if existing:
        existing.endpoint = data.endpoint
        existing.p256dh = data.keys.p256dh
        existing.auth = data.keys.auth
    else:
        db.add(
            PushSubscription(
                user_id=current_user.id,
                endpoint=data.endpoint,
                p256dh=data.keys.p256dh,
                auth=data.keys.auth,
            )
        )
    db.commit()
    return {"status": "subscribed"}


@router.delete("/unsubscribe")
async def unsubscribe(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    db.query(PushSubscription).filter_by(user_id=current_user.id).delete()
    db.commit()
    return {"status": "unsubscribed"}

from datetime import datetime

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from edubus.api.deps import Principal, get_current_principal, get_db, principal_from_token
from edubus.models.notification import Notification, NotificationType
from edubus.schemas.notification import NotificationOut
from edubus.services import notifications as notification_service
from edubus.services.notification_hub import notification_hub

router = APIRouter()


def _notification_out(notification: Notification, read_at: datetime | None) -> NotificationOut:
    out = NotificationOut.model_validate(notification)
    return out.model_copy(update={"is_read": read_at is not None, "read_at": read_at})


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    notification_type: NotificationType | None = Query(default=None),
    is_read: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    rows = notification_service.list_notifications_for(
        db,
        principal_id=current_principal.id,
        audience_role=current_principal.role,
        notification_type=notification_type,
        is_read=is_read,
        limit=limit,
        offset=offset,
    )
    return [_notification_out(notification, read_at) for notification, read_at in rows]


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification, read_at = notification_service.mark_notification_read(
        db,
        notification_id,
        principal_id=current_principal.id,
        audience_role=current_principal.role,
    )
    return _notification_out(notification, read_at)


def _extract_ws_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token

    auth_header = websocket.headers.get("authorization")
    if not auth_header:
        return None
    scheme, _, value = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


@router.websocket("/notifications/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    token = _extract_ws_token(websocket)
    principal = principal_from_token(token) if token else None
    if principal is None:
        await websocket.close(code=1008)
        return

    audience = principal.role.value
    await notification_hub.connect(audience, websocket)
    try:
        await websocket.send_json({"event": "connected", "audience_role": audience})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await notification_hub.disconnect(audience, websocket)

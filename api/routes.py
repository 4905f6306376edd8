import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status

from core.errors import PermissionDeniedError
from ledger.models import (
    Account,
    Activity,
    CreateAccountRequest,
    CreditRequest,
    GiftRequest,
    IntegrityReport,
    LeaderboardEntry,
    LedgerHistoryResponse,
    TransferResponse,
)
from notifications.models import Notification, UnreadCountResponse
from social.models import (
    FriendRequest,
    Friendship,
    FriendshipResponse,
    FriendStatusResponse,
    SendFriendRequest,
)

from .container import ServiceContainer

router = APIRouter()


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


# Set by the identity provider in front of this service
def current_user(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    return x_user_id


def system_caller(
    request: Request, x_system_key: Optional[str] = Header(None, alias="X-System-Key")
) -> None:
    expected = get_container(request).settings.system_api_key
    if not expected or not x_system_key or not secrets.compare_digest(x_system_key, expected):
        raise PermissionDeniedError("System credits require a valid X-System-Key")


@router.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "fetch-points"}


# Accounts

@router.post("/accounts", response_model=Account, status_code=status.HTTP_201_CREATED, tags=["Accounts"])
def create_account(request: CreateAccountRequest, c: ServiceContainer = Depends(get_container)):
    return c.accounts.create_account(request)


@router.get("/accounts", response_model=list[Account], tags=["Accounts"])
def search_accounts(q: str, limit: int = 20, c: ServiceContainer = Depends(get_container)):
    return c.accounts.search_users(q, limit)


@router.get("/accounts/{user_id}", response_model=Account, tags=["Accounts"])
def get_account(user_id: str, c: ServiceContainer = Depends(get_container)):
    return c.accounts.get_account(user_id)


@router.get("/usernames/{username}/available", tags=["Accounts"])
def username_available(username: str, c: ServiceContainer = Depends(get_container)):
    return {"username": username, "available": c.accounts.is_username_available(username)}


@router.get("/student-ids/{student_id}/available", tags=["Accounts"])
def student_id_available(student_id: str, c: ServiceContainer = Depends(get_container)):
    return {"student_id": student_id, "available": c.accounts.is_student_id_available(student_id)}


# Points

@router.post("/gifts", response_model=TransferResponse, status_code=status.HTTP_201_CREATED, tags=["Points"])
def send_gift(
    request: GiftRequest,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return c.gifts.send_gift(user_id, request)


@router.post(
    "/credits",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(system_caller)],
    tags=["Points"],
)
def award_points(request: CreditRequest, c: ServiceContainer = Depends(get_container)):
    return c.gifts.award(request)


@router.get("/accounts/{user_id}/ledger", response_model=LedgerHistoryResponse, tags=["Points"])
def get_ledger(user_id: str, limit: Optional[int] = None, c: ServiceContainer = Depends(get_container)):
    return c.ledger.get_ledger_history(user_id, limit)


@router.get("/accounts/{user_id}/activity", response_model=list[Activity], tags=["Points"])
def get_activity(user_id: str, limit: Optional[int] = None, c: ServiceContainer = Depends(get_container)):
    return c.ledger.get_activity(user_id, limit)


@router.get("/accounts/{user_id}/integrity", response_model=IntegrityReport, tags=["Points"])
def verify_integrity(user_id: str, c: ServiceContainer = Depends(get_container)):
    return c.ledger.verify_integrity(user_id)


# Leaderboard

@router.get("/leaderboard", response_model=list[LeaderboardEntry], tags=["Leaderboard"])
def get_leaderboard(limit: Optional[int] = None, c: ServiceContainer = Depends(get_container)):
    return c.ranking.leaderboard(limit)


@router.get("/accounts/{user_id}/rank", tags=["Leaderboard"])
def get_rank(user_id: str, c: ServiceContainer = Depends(get_container)):
    return {"user_id": user_id, "rank": c.ranking.rank_of(user_id)}


@router.post("/leaderboard/refresh", tags=["Leaderboard"])
def refresh_leaderboard(c: ServiceContainer = Depends(get_container)):
    return {"changed": c.ranking.refresh_ranks()}


# Friends

@router.post("/friends/requests", response_model=FriendshipResponse, status_code=status.HTTP_201_CREATED, tags=["Friends"])
def send_friend_request(
    request: SendFriendRequest,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return c.friend_requests.send_request(user_id, request.receiver_id)


@router.post("/friends/requests/{friendship_id}/accept", response_model=FriendshipResponse, tags=["Friends"])
def accept_friend_request(
    friendship_id: str,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return c.friend_requests.accept(friendship_id, user_id)


@router.post("/friends/requests/{friendship_id}/decline", tags=["Friends"])
def decline_friend_request(
    friendship_id: str,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return {"removed": c.friend_requests.decline(friendship_id, user_id)}


@router.post("/friends/requests/{friendship_id}/cancel", tags=["Friends"])
def cancel_friend_request(
    friendship_id: str,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return {"removed": c.friend_requests.cancel(friendship_id, user_id)}


@router.delete("/friends/{other_user_id}", tags=["Friends"])
def unfriend(
    other_user_id: str,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return {"removed": c.friend_requests.unfriend(user_id, other_user_id)}


@router.post("/friends/{other_user_id}/block", response_model=Friendship, tags=["Friends"])
def block_user(
    other_user_id: str,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return c.friend_requests.block(user_id, other_user_id)


@router.get("/friends/{other_user_id}/status", response_model=FriendStatusResponse, tags=["Friends"])
def friend_status(
    other_user_id: str,
    user_id: str = Depends(current_user),
    c: ServiceContainer = Depends(get_container),
):
    return FriendStatusResponse(
        user_id=user_id, other_user_id=other_user_id, status=c.graph.status(user_id, other_user_id)
    )


@router.get("/users/{user_id}/friends", response_model=list[Account], tags=["Friends"])
def list_friends(user_id: str, c: ServiceContainer = Depends(get_container)):
    return c.graph.list_friends(user_id)


@router.get("/users/{user_id}/friend-requests", response_model=list[FriendRequest], tags=["Friends"])
def list_friend_requests(user_id: str, c: ServiceContainer = Depends(get_container)):
    return c.graph.list_pending_incoming(user_id)


# Notifications

@router.get("/users/{user_id}/notifications", response_model=list[Notification], tags=["Notifications"])
def list_notifications(user_id: str, limit: Optional[int] = None, c: ServiceContainer = Depends(get_container)):
    return c.notifier.list_notifications(user_id, limit)


@router.get("/users/{user_id}/notifications/unread-count", response_model=UnreadCountResponse, tags=["Notifications"])
def unread_count(user_id: str, c: ServiceContainer = Depends(get_container)):
    return UnreadCountResponse(user_id=user_id, unread=c.notifier.unread_count(user_id))


@router.post("/notifications/{notification_id}/read", response_model=Notification, tags=["Notifications"])
def mark_read(notification_id: str, c: ServiceContainer = Depends(get_container)):
    return c.notifier.mark_read(notification_id)


@router.post("/users/{user_id}/notifications/read-all", tags=["Notifications"])
def mark_all_read(user_id: str, c: ServiceContainer = Depends(get_container)):
    return {"marked": c.notifier.mark_all_read(user_id)}

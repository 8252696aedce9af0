"""
주문 소유자: 회원(AuthenticatedOwner) 또는 비회원(GuestOwner) 중 정확히 하나
"""
from dataclasses import dataclass
from typing import Optional, Union

from shopcore.services.exceptions import InvalidOrderInput


@dataclass(frozen=True)
class AuthenticatedOwner:
    user_id: str


@dataclass(frozen=True)
class GuestOwner:
    email: str
    name: str


OrderOwner = Union[AuthenticatedOwner, GuestOwner]


def resolve_owner(
    user_id: Optional[str],
    guest_email: Optional[str],
    guest_name: Optional[str],
) -> OrderOwner:
    """입력 필드에서 소유자 변형을 만든다. 둘 다 있거나 둘 다 없으면 거부."""
    has_user = bool(user_id and user_id.strip())
    has_guest = bool(guest_email and guest_email.strip())

    if has_user and has_guest:
        raise InvalidOrderInput("회원 ID와 비회원 정보를 동시에 지정할 수 없습니다", field="owner")
    if not has_user and not has_guest:
        raise InvalidOrderInput("회원 ID 또는 비회원 정보 중 하나가 필요합니다", field="owner")

    if has_user:
        return AuthenticatedOwner(user_id=user_id.strip())

    email = guest_email.strip().lower()
    if "@" not in email:
        raise InvalidOrderInput(f"비회원 이메일 형식이 올바르지 않습니다: {guest_email}", field="guest.email")
    if not guest_name or not guest_name.strip():
        raise InvalidOrderInput("비회원 이름이 필요합니다", field="guest.name")
    return GuestOwner(email=email, name=guest_name.strip())


def owner_columns(owner: OrderOwner) -> dict:
    if isinstance(owner, AuthenticatedOwner):
        return {"user_id": owner.user_id, "guest_email": None, "guest_name": None}
    return {"user_id": None, "guest_email": owner.email, "guest_name": owner.name}

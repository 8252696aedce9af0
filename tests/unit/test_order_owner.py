import pytest

from shopcore.services.exceptions import InvalidOrderInput
from shopcore.services.order_owner import AuthenticatedOwner, GuestOwner, owner_columns, resolve_owner


@pytest.mark.unit
class TestResolveOwner:
    """주문 소유자(회원/비회원) 해석 테스트"""

    def test_authenticated_owner(self):
        owner = resolve_owner("user-1", None, None)
        assert owner == AuthenticatedOwner(user_id="user-1")
        assert owner_columns(owner) == {"user_id": "user-1", "guest_email": None, "guest_name": None}

    def test_guest_owner_normalizes_email(self):
        owner = resolve_owner(None, "  A@B.com ", "홍길동")
        assert owner == GuestOwner(email="a@b.com", name="홍길동")
        assert owner_columns(owner)["user_id"] is None

    def test_both_identities_rejected(self):
        with pytest.raises(InvalidOrderInput) as excinfo:
            resolve_owner("user-1", "a@b.com", "홍길동")
        assert excinfo.value.field == "owner"

    def test_neither_identity_rejected(self):
        with pytest.raises(InvalidOrderInput):
            resolve_owner(None, None, None)
        with pytest.raises(InvalidOrderInput):
            resolve_owner("   ", "", None)

    def test_guest_requires_valid_email_and_name(self):
        with pytest.raises(InvalidOrderInput) as excinfo:
            resolve_owner(None, "not-an-email", "홍길동")
        assert excinfo.value.field == "guest.email"

        with pytest.raises(InvalidOrderInput) as excinfo:
            resolve_owner(None, "a@b.com", " ")
        assert excinfo.value.field == "guest.name"

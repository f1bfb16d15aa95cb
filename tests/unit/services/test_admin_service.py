"""Unit tests for AdminService rules shared by the MCP tools and REST routes."""
import pytest

from core.errors import ConflictError, ErrorCode, ForbiddenError, InvalidInputError, NotFoundError


@pytest.fixture
async def root(make_user):
    user, _ = await make_user("root", is_admin=True)
    return user


class TestCreateUser:
    @pytest.mark.asyncio
    async def test_returns_key_once_and_audits(self, admin_service, root, api_key_service, user_service, audit_entries):
        data = await admin_service.create_user("root", "dave", "dave@example.com")

        assert data["user_id"] == "dave"
        assert data["api_key_name"] == "default"
        assert (await api_key_service.lookup_by_key(data["api_key"])).user_id == "dave"
        [entry] = await audit_entries()
        assert entry.action == "create_user"
        assert "api_key" not in (entry.details or {})

    @pytest.mark.asyncio
    async def test_validates_input(self, admin_service, root):
        with pytest.raises(InvalidInputError):
            await admin_service.create_user("root", "bad id", "dave@example.com")
        with pytest.raises(InvalidInputError):
            await admin_service.create_user("root", "dave", "not-an-email")


class TestApiKeys:
    @pytest.mark.asyncio
    async def test_create_for_missing_user(self, admin_service, root):
        with pytest.raises(NotFoundError):
            await admin_service.create_api_key("root", "ghost", "laptop")

    @pytest.mark.asyncio
    async def test_create_duplicate_name(self, admin_service, root, make_user):
        await make_user("dave", key_name="laptop")
        with pytest.raises(ConflictError):
            await admin_service.create_api_key("root", "dave", "laptop")

    @pytest.mark.asyncio
    async def test_revoke_missing_lists_available(self, admin_service, root, make_user):
        await make_user("dave", key_name="laptop")
        with pytest.raises(NotFoundError) as exc_info:
            await admin_service.revoke_api_key("root", "dave", "desktop")
        assert exc_info.value.message == "API key 'desktop' not found for user 'dave'. Available keys: laptop"

    @pytest.mark.asyncio
    async def test_revoke_missing_with_no_keys(self, admin_service, root, make_user):
        await make_user("dave", key_name=None)
        with pytest.raises(NotFoundError) as exc_info:
            await admin_service.revoke_api_key("root", "dave", "desktop")
        assert exc_info.value.message.endswith("Available keys: none")

    @pytest.mark.asyncio
    async def test_revoke(self, admin_service, root, make_user, api_key_service):
        _, plain_key = await make_user("dave", key_name="laptop")
        data = await admin_service.revoke_api_key("root", "dave", "laptop")
        assert data["api_key_name"] == "laptop"
        assert await api_key_service.lookup_by_key(plain_key) is None


class TestDeleteUser:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("confirm", [None, False])
    async def test_requires_confirm(self, admin_service, root, make_user, confirm):
        await make_user("dave")
        with pytest.raises(InvalidInputError) as exc_info:
            await admin_service.delete_user("root", "dave", confirm)
        assert "confirm=true" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, admin_service, root):
        with pytest.raises(ForbiddenError) as exc_info:
            await admin_service.delete_user("root", "root", True)
        assert exc_info.value.message == "Cannot delete your own admin account"

    @pytest.mark.asyncio
    async def test_cannot_delete_other_admin(self, admin_service, root, make_user):
        await make_user("root2", is_admin=True)
        with pytest.raises(ForbiddenError) as exc_info:
            await admin_service.delete_user("root", "root2", True)
        assert exc_info.value.code is ErrorCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_missing_user(self, admin_service, root):
        with pytest.raises(NotFoundError):
            await admin_service.delete_user("root", "ghost", True)

    @pytest.mark.asyncio
    async def test_deletes_and_audits(self, admin_service, root, make_user, user_service, audit_entries):
        await make_user("dave")
        data = await admin_service.delete_user("root", "dave", True)

        assert data["email"] == "dave@example.com"
        assert await user_service.get("dave") is None
        [entry] = await audit_entries()
        assert (entry.action, entry.target_user_id) == ("delete_user", "dave")


class TestListUsers:
    @pytest.mark.asyncio
    async def test_list_is_audited_in_background(self, admin_service, root, user_service, audit_entries):
        users = await admin_service.list_users("root")
        await user_service.drain()

        assert [s.user.id for s in users] == ["root"]
        [entry] = await audit_entries()
        assert entry.action == "list_users"

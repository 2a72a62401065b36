import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.models import Capability, UserRole
from textbook_indents.core.auth.service import AuthService
from textbook_indents.core.exceptions import AuthenticationError, DuplicateError, ValidationError
from tests.helpers import auth_headers, create_user


class TestAuthService:
    """Tests for AuthService."""

    async def test_create_user(self, db_session: AsyncSession):
        user = await AuthService(db_session).create_user(
            email="admin@school.com",
            password="Password123",
            full_name="Branch Admin",
            role=UserRole.BRANCH_ADMIN,
            branch_id=1,
        )

        assert user.id is not None
        assert user.role == "BranchAdmin"
        assert user.branch_id == 1
        assert user.is_active is True
        assert user.password_hash != "Password123"

    async def test_duplicate_email(self, db_session: AsyncSession):
        service = AuthService(db_session)
        await service.create_user(
            email="admin@school.com",
            password="Password123",
            full_name="Branch Admin",
            role=UserRole.BRANCH_ADMIN,
            branch_id=1,
        )

        with pytest.raises(DuplicateError) as exc_info:
            await service.create_user(
                email="admin@school.com",
                password="AnotherPass123",
                full_name="Someone Else",
                role=UserRole.TEACHER,
                branch_id=1,
            )
        assert "already exists" in str(exc_info.value)

    async def test_branch_required_below_super_admin(self, db_session: AsyncSession):
        with pytest.raises(ValidationError):
            await AuthService(db_session).create_user(
                email="teacher@school.com",
                password="Password123",
                full_name="Teacher",
                role=UserRole.TEACHER,
            )

    async def test_authenticate(self, db_session: AsyncSession):
        await create_user(db_session, UserRole.ACCOUNTANT, email="acc@school.com")

        user, access_token, refresh_token = await AuthService(db_session).authenticate(
            email="acc@school.com", password="Password123"
        )

        assert user.email == "acc@school.com"
        assert user.last_login_at is not None
        assert access_token and refresh_token

    async def test_authenticate_wrong_password(self, db_session: AsyncSession):
        await create_user(db_session, UserRole.ACCOUNTANT, email="acc@school.com")

        with pytest.raises(AuthenticationError):
            await AuthService(db_session).authenticate(
                email="acc@school.com", password="WrongPassword"
            )

    async def test_authenticate_inactive_user(self, db_session: AsyncSession):
        user = await create_user(db_session, UserRole.ACCOUNTANT, email="acc@school.com")
        user.is_active = False
        await db_session.flush()

        with pytest.raises(AuthenticationError) as exc_info:
            await AuthService(db_session).authenticate(
                email="acc@school.com", password="Password123"
            )
        assert "deactivated" in str(exc_info.value)


class TestCapabilities:
    async def test_role_defaults(self, db_session: AsyncSession):
        teacher = await create_user(db_session, UserRole.TEACHER)
        accountant = await create_user(db_session, UserRole.ACCOUNTANT)

        assert teacher.has_capability(Capability.TEXTBOOKS_READ)
        assert not teacher.has_capability(Capability.TEXTBOOKS_CREATE)
        assert accountant.has_capability(Capability.TEXTBOOKS_UPDATE)
        assert not accountant.has_capability(Capability.TEXTBOOKS_DELETE)

    async def test_extra_grant(self, db_session: AsyncSession):
        user = await AuthService(db_session).create_user(
            email="staff@school.com",
            password="Password123",
            full_name="Store Keeper",
            role=UserRole.STAFF,
            branch_id=1,
            capabilities=[Capability.TEXTBOOKS_READ],
        )

        assert user.has_capability(Capability.TEXTBOOKS_READ)
        assert not user.has_capability(Capability.TEXTBOOKS_UPDATE)

    async def test_scope_branch(self, db_session: AsyncSession):
        super_admin = await create_user(db_session, UserRole.SUPER_ADMIN)
        branch_admin = await create_user(db_session, UserRole.BRANCH_ADMIN, branch_id=3)

        assert super_admin.scope_branch_id is None
        assert branch_admin.scope_branch_id == 3


class TestAuthEndpoints:
    """Tests for auth API endpoints."""

    async def test_login(self, client: AsyncClient, db_session: AsyncSession):
        await create_user(db_session, UserRole.BRANCH_ADMIN, email="admin@school.com")

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "admin@school.com", "password": "Password123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert "access_token" in data["data"]
        assert data["data"]["user"]["email"] == "admin@school.com"
        assert data["data"]["user"]["branch_id"] == 1

    async def test_login_wrong_credentials(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "wrong@school.com", "password": "WrongPass"},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "authentication_error"

    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_me(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, UserRole.TEACHER, email="teacher@school.com")

        response = await client.get("/api/v1/auth/me", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["data"]["email"] == "teacher@school.com"

    async def test_refresh(self, client: AsyncClient, db_session: AsyncSession):
        await create_user(db_session, UserRole.BRANCH_ADMIN, email="admin@school.com")
        login = await client.post(
            "/api/v1/auth/login",
            json={"email": "admin@school.com", "password": "Password123"},
        )

        response = await client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": login.json()["data"]["refresh_token"]},
        )

        assert response.status_code == 200
        assert response.json()["data"]["access_token"]

    async def test_refresh_rejects_access_token(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        user = await create_user(db_session, UserRole.BRANCH_ADMIN)
        access_token = auth_headers(user)["Authorization"].removeprefix("Bearer ")

        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": access_token}
        )

        assert response.status_code == 401

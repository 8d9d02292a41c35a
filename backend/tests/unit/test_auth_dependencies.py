"""
Tests for authentication dependencies and the capability policy.
"""

import pytest
from unittest.mock import patch
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from auth.dependencies import (
    UserContext, get_token_payload, get_current_user, require_resource_manager
)
from auth.permissions import require_group_introducer, require_resource_introducer
from models import ResourceGroupIntroducer, ResourceIntroducer
from services.access_policy import Capability, has_capability, has_manage_permission
from services.jwt_service import TokenPayload
from tests.conftest import create_group, create_resource, create_user


def _context(user) -> UserContext:
    return UserContext(
        user_id=user.id,
        email=user.email,
        name=user.name,
        can_manage_resources=user.can_manage_resources
    )


class TestGetTokenPayload:
    """Test get_token_payload dependency."""

    @patch('auth.dependencies.jwt_service')
    def test_valid_token(self, mock_jwt_service):
        """Test extracting payload from valid token."""
        mock_payload = TokenPayload(sub="1", user_id=1, email="maker@example.com", name="Maker")
        mock_jwt_service.verify_token.return_value = mock_payload

        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="valid.jwt.token")

        assert get_token_payload(credentials) == mock_payload
        mock_jwt_service.verify_token.assert_called_once_with("valid.jwt.token")

    @patch('auth.dependencies.jwt_service')
    def test_invalid_token(self, mock_jwt_service):
        """Invalid tokens yield no payload."""
        mock_jwt_service.verify_token.return_value = None
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="bad")

        assert get_token_payload(credentials) is None

    def test_no_credentials(self):
        """Missing credentials yield no payload."""
        assert get_token_payload(None) is None


class TestGetCurrentUser:
    """Test get_current_user dependency."""

    def test_authenticated(self, db_session, member):
        """A valid payload resolves to the user's context."""
        context = get_current_user(TokenPayload.for_user(member), db_session)

        assert context.user_id == member.id
        assert context.email == member.email
        assert context.is_resource_manager() is False

    def test_missing_payload(self, db_session):
        """Requests without a token are rejected with 401."""
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(None, db_session)
        assert exc_info.value.status_code == 401

    def test_unknown_user(self, db_session):
        """Tokens for deleted users are rejected."""
        payload = TokenPayload(sub="999", user_id=999, email="gone@example.com", name="Gone")
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(payload, db_session)
        assert exc_info.value.status_code == 401

    def test_manage_permission_read_from_database(self, db_session, member):
        """Granting the manage permission takes effect without a new token."""
        payload = TokenPayload.for_user(member)
        member.can_manage_resources = True
        db_session.commit()

        assert get_current_user(payload, db_session).is_resource_manager() is True


class TestRequireResourceManager:
    """Test require_resource_manager dependency."""

    def test_manager_allowed(self, manager):
        context = _context(manager)
        assert require_resource_manager(context) is context

    def test_member_forbidden(self, member):
        with pytest.raises(HTTPException) as exc_info:
            require_resource_manager(_context(member))
        assert exc_info.value.status_code == 403


class TestCapabilities:
    """Test the manage-or-introducer capability policy."""

    def test_manager_holds_every_capability(self, db_session, manager, resource):
        group = create_group(db_session, "Wood shop")

        assert has_manage_permission(db_session, manager.id)
        assert has_capability(db_session, manager.id, Capability.manage())
        assert has_capability(db_session, manager.id, Capability.resource_introducer(resource.id))
        assert has_capability(db_session, manager.id, Capability.group_introducer(group.id))

    def test_member_holds_none(self, db_session, member, resource):
        assert not has_manage_permission(db_session, member.id)
        assert not has_capability(db_session, member.id, Capability.manage())
        assert not has_capability(db_session, member.id, Capability.resource_introducer(resource.id))

    def test_resource_introducer_grant(self, db_session, resource):
        tutor = create_user(db_session, "Tutor")
        other = create_resource(db_session, "Lathe")
        db_session.add(ResourceIntroducer(resource_id=resource.id, user_id=tutor.id))
        db_session.commit()

        assert has_capability(db_session, tutor.id, Capability.resource_introducer(resource.id))
        assert not has_capability(db_session, tutor.id, Capability.resource_introducer(other.id))
        assert not has_capability(db_session, tutor.id, Capability.manage())

    def test_group_introducer_grant(self, db_session):
        tutor = create_user(db_session, "Tutor")
        group = create_group(db_session, "Metal shop")
        db_session.add(ResourceGroupIntroducer(group_id=group.id, user_id=tutor.id))
        db_session.commit()

        assert has_capability(db_session, tutor.id, Capability.group_introducer(group.id))
        assert not has_capability(db_session, tutor.id, Capability.group_introducer(group.id + 1))

    def test_unknown_user(self, db_session):
        assert not has_manage_permission(db_session, 999)


class TestIntroducerDependencies:
    """Test the path-scoped introducer dependencies."""

    def test_resource_introducer_dependency(self, db_session, member, resource):
        dependency = require_resource_introducer()
        context = _context(member)

        with pytest.raises(HTTPException) as exc_info:
            dependency(resource.id, context, db_session)
        assert exc_info.value.status_code == 403

        db_session.add(ResourceIntroducer(resource_id=resource.id, user_id=member.id))
        db_session.commit()
        assert dependency(resource.id, context, db_session) is context

    def test_group_introducer_dependency(self, db_session, manager, member):
        group = create_group(db_session, "Textiles")
        dependency = require_group_introducer()

        assert dependency(group.id, _context(manager), db_session).user_id == manager.id
        with pytest.raises(HTTPException) as exc_info:
            dependency(group.id, _context(member), db_session)
        assert exc_info.value.status_code == 403

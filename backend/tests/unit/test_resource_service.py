"""
Unit tests for resource and resource group management.
"""

import pytest
from fastapi import HTTPException

from models import Resource, ResourceGroupIntroducer, ResourceIntroduction, UsageSession
from services.introduction_service import IntroductionService
from services.resource_service import ResourceService
from tests.conftest import create_resource, create_group
from utils.datetime_utils import utc_now


class TestResourceService:
    """Test resource CRUD."""

    def test_create_and_get(self, db_session):
        """Created resources can be fetched by id."""
        resource = ResourceService.create_resource(
            db_session, "3D Printer", description="Prusa MK4", max_session_time_minutes=240
        )

        fetched = ResourceService.get_resource(db_session, resource.id)
        assert fetched.name == "3D Printer"
        assert fetched.max_session_time_minutes == 240
        assert fetched.require_session_duration_estimation is False

    def test_get_missing(self, db_session):
        """Missing resources give 404."""
        with pytest.raises(HTTPException) as exc_info:
            ResourceService.get_resource(db_session, 404)
        assert exc_info.value.status_code == 404

    def test_create_in_missing_group(self, db_session):
        """A group id must refer to an existing group."""
        with pytest.raises(HTTPException) as exc_info:
            ResourceService.create_resource(db_session, "Saw", group_id=99)
        assert exc_info.value.status_code == 404

    def test_list_ordered_by_name(self, db_session):
        """Resources are listed alphabetically and can be filtered by group."""
        group = create_group(db_session, "Wood")
        create_resource(db_session, "Lathe")
        create_resource(db_session, "Bandsaw", group=group)
        create_resource(db_session, "Drill")

        resources, total = ResourceService.list_resources(db_session)
        assert total == 3
        assert [r.name for r in resources] == ["Bandsaw", "Drill", "Lathe"]

        grouped, grouped_total = ResourceService.list_resources(db_session, group_id=group.id)
        assert grouped_total == 1
        assert grouped[0].name == "Bandsaw"

    def test_update_only_given_fields(self, db_session, resource):
        """None leaves a field unchanged."""
        updated = ResourceService.update_resource(
            db_session, resource.id, name="Laser cutter", require_session_duration_estimation=True
        )

        assert updated.name == "Laser cutter"
        assert updated.description == "CO2 laser cutter"
        assert updated.require_session_duration_estimation is True

    def test_delete_cascades(self, db_session, resource, manager, member):
        """Deleting a resource deletes its sessions and introductions."""
        IntroductionService.create_introduction(db_session, resource.id, manager.id, member.id)
        db_session.add(UsageSession(resource_id=resource.id, user_id=member.id, start_time=utc_now()))
        db_session.commit()

        ResourceService.delete_resource(db_session, resource.id)

        assert db_session.query(Resource).count() == 0
        assert db_session.query(UsageSession).count() == 0
        assert db_session.query(ResourceIntroduction).count() == 0


class TestResourceGroups:
    """Test group management and membership."""

    def test_assign_and_remove(self, db_session, resource):
        """Resources move in and out of groups."""
        group = ResourceService.create_group(db_session, "Lasers")

        assigned = ResourceService.assign_to_group(db_session, resource.id, group.id)
        assert assigned.group_id == group.id

        removed = ResourceService.remove_from_group(db_session, resource.id)
        assert removed.group_id is None

    def test_remove_ungrouped(self, db_session, resource):
        """Removing an ungrouped resource from its group gives 400."""
        with pytest.raises(HTTPException) as exc_info:
            ResourceService.remove_from_group(db_session, resource.id)
        assert exc_info.value.status_code == 400

    def test_update_group(self, db_session):
        """Groups can be renamed."""
        group = ResourceService.create_group(db_session, "Metal", description="Welding and grinding")

        updated = ResourceService.update_group(db_session, group.id, name="Metal shop")

        assert updated.name == "Metal shop"
        assert updated.description == "Welding and grinding"
        assert [g.name for g in ResourceService.list_groups(db_session)] == ["Metal shop"]

    def test_delete_group_keeps_resources(self, db_session, manager, member):
        """Deleting a group detaches its resources and deletes group grants."""
        group = create_group(db_session, "Electronics")
        scope = create_resource(db_session, "Oscilloscope", group=group)
        db_session.add(ResourceGroupIntroducer(group_id=group.id, user_id=member.id))
        db_session.commit()
        IntroductionService.create_group_introduction(db_session, group.id, manager.id, member.id)

        ResourceService.delete_group(db_session, group.id)

        db_session.expire_all()
        assert db_session.get(Resource, scope.id).group_id is None
        assert db_session.query(ResourceGroupIntroducer).count() == 0
        assert db_session.query(ResourceIntroduction).count() == 0
        with pytest.raises(HTTPException):
            ResourceService.get_group(db_session, group.id)

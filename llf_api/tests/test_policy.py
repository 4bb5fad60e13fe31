from unittest import TestCase

from llf_api.engine.entities import Principal, User, UserRole
from llf_api.engine.policy import (
    can_approve_engineers,
    can_close_abnormalities,
    can_manage_machines,
    describe_role,
    is_active_account,
    is_admin,
)


class AccessPolicyTests(TestCase):
    def test_admin_roles(self):
        admins = {role for role in UserRole if is_admin(role)}
        self.assertEqual(
            admins,
            {UserRole.MANAGEMENT, UserRole.DEPARTMENT_HEAD, UserRole.SECTION_HEAD, UserRole.AREA_HEAD},
        )

    def test_engineer_approvers_are_the_heads_and_management(self):
        approvers = {role for role in UserRole if can_approve_engineers(role)}
        self.assertEqual(
            approvers,
            {UserRole.DEPARTMENT_HEAD, UserRole.SECTION_HEAD, UserRole.AREA_HEAD, UserRole.MANAGEMENT},
        )

    def test_only_engineers_and_management_close_abnormalities(self):
        closers = {role for role in UserRole if can_close_abnormalities(role)}
        self.assertEqual(closers, {UserRole.ENGINEER, UserRole.MANAGEMENT})
        self.assertFalse(can_close_abnormalities(Principal(user_id="u-1", role=UserRole.SECTION_HEAD)))

    def test_every_role_may_manage_machines(self):
        self.assertTrue(all(can_manage_machines(role) for role in UserRole))

    def test_pending_engineer_is_not_an_active_account(self):
        pending = User(id="e-1", email="e@plant.test", name="E", role=UserRole.ENGINEER, is_approved=False)
        self.assertFalse(is_active_account(pending))
        self.assertTrue(is_active_account(User(id="w-1", email="w@plant.test", name="W")))

    def test_describe_role_lists_capabilities(self):
        described = describe_role(UserRole.ENGINEER)
        self.assertFalse(described["is_admin"])
        self.assertEqual(described["capabilities"], ["close_abnormalities", "manage_machines"])

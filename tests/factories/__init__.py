"""
Data factories for test data generation.

Factories use factory-boy to create realistic test data with sensible defaults.
All factories support async creation via create_async() method.

Usage:
    from tests.factories import UserFactory, OrganizationFactory, MembershipFactory

    # Create a company founded by a recruiter
    admin = await UserFactory.create_async(db_session, role="recruiter")
    org = await OrganizationFactory.create_with_admin_async(db_session, admin)

    # Add an employee
    employee = await UserFactory.create_async(db_session)
    await MembershipFactory.create_async(db_session, organization=org, user=employee, role="employee")
"""

from tests.factories.user import UserFactory
from tests.factories.organization import OrganizationFactory
from tests.factories.organization_member import JoinRequestFactory, MembershipFactory

__all__ = [
    "UserFactory",
    "OrganizationFactory",
    "JoinRequestFactory",
    "MembershipFactory",
]

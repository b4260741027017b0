# qm_core/conftest.py
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from qm_core.counters.models import Counter
from qm_core.iam.models import UserProfile, UserRole
from qm_core.notifications.hub import RecordingNotifier
from qm_core.organizations.services import OrganizationService
from qm_core.tokens.services import TokenService


def scope_headers(organization):
    """
    Organization scope header. DRF test client requires HTTP_ prefix.
    """
    return {"HTTP_X_ORGANIZATION_ID": str(organization.id)}


def make_member(username: str, organization, role: str = UserRole.STAFF, **extra):
    User = get_user_model()
    user = User.objects.create_user(username=username, password="pass12345", **extra)
    UserProfile.objects.create(user=user, organization=organization, role=role)
    return user


def client_for(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def organization(db):
    # provisions one QueueSetting per customer type
    return OrganizationService.create(name="Main Branch", code="main")


@pytest.fixture
def other_organization(db):
    return OrganizationService.create(name="Other Branch", code="other")


@pytest.fixture
def counter(organization):
    return Counter.objects.create(organization_id=organization.id, name="Counter 1")


@pytest.fixture
def counter2(organization):
    return Counter.objects.create(organization_id=organization.id, name="Counter 2")


@pytest.fixture
def admin_user(organization):
    return make_member("admin1", organization, role=UserRole.ADMIN)


@pytest.fixture
def staff_user(organization):
    return make_member("staff1", organization, role=UserRole.STAFF)


@pytest.fixture
def super_admin(organization):
    return make_member("root1", organization, role=UserRole.SUPER_ADMIN)


@pytest.fixture
def api_client(admin_user):
    return client_for(admin_user)


@pytest.fixture
def staff_client(staff_user):
    return client_for(staff_user)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def token_service(notifier):
    return TokenService(notifier=notifier)


@pytest.fixture
def issue(organization, token_service):
    """
    Issue a token: issue("instant", priority=3).token
    """
    def _issue(customer_type: str = "instant", **kwargs):
        return token_service.create_token(organization_id=organization.id, customer_type=customer_type, **kwargs)

    return _issue

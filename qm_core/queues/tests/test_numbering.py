import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from qm_core.common.api.exceptions import ConfigurationError, ConflictError
from qm_core.queues.models import QueueSetting
from qm_core.queues.numbering import NumberingAuthority, format_number

pytestmark = pytest.mark.django_db


def _setting(organization, customer_type="instant"):
    return QueueSetting.objects.get(organization_id=organization.id, customer_type=customer_type)


def test_format_number_pads_to_three_digits():
    assert format_number("I", 7) == "I007"
    assert format_number("VIP", 123) == "VIP123"
    assert format_number("R", 1000) == "R1000"


def test_numbers_are_contiguous_per_type(organization):
    first = NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")
    second = NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")
    other = NumberingAuthority.issue_number(organization_id=organization.id, customer_type="retail")

    assert (first.number, second.number) == ("I001", "I002")
    assert other.number == "R001"
    assert _setting(organization).current_number == 2


def test_sequences_are_isolated_per_organization(organization, other_organization):
    NumberingAuthority.issue_number(organization_id=organization.id, customer_type="browser")
    issued = NumberingAuthority.issue_number(organization_id=other_organization.id, customer_type="browser")
    assert issued.number == "B001"


def test_wraps_to_one_after_max(organization):
    setting = _setting(organization)
    setting.max_number = 3
    setting.current_number = 3
    setting.save()

    issued = NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")

    assert issued.number == "I001"
    assert issued.wrapped is True


def test_refuses_when_max_reached_without_wrap(organization):
    setting = _setting(organization)
    setting.max_number = 2
    setting.current_number = 2
    setting.wrap_at_max = False
    setting.save()

    with pytest.raises(ConflictError):
        NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")

    assert _setting(organization).current_number == 2


def test_daily_reset_applies_at_first_issue_after_boundary(organization):
    setting = _setting(organization)
    setting.current_number = 42
    setting.last_reset_at = timezone.now() - timedelta(days=2)
    setting.save()

    issued = NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")

    assert issued.number == "I001"
    assert issued.reset is True


def test_no_reset_when_reset_daily_disabled(organization):
    setting = _setting(organization)
    setting.current_number = 42
    setting.reset_daily = False
    setting.last_reset_at = timezone.now() - timedelta(days=2)
    setting.save()

    issued = NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")
    assert issued.number == "I043"


def test_missing_setting_is_a_configuration_error(organization):
    with pytest.raises(ConfigurationError):
        NumberingAuthority.issue_number(organization_id=uuid.uuid4(), customer_type="instant")


def test_inactive_setting_is_a_configuration_error(organization):
    setting = _setting(organization)
    setting.is_active = False
    setting.save()

    with pytest.raises(ConfigurationError):
        NumberingAuthority.issue_number(organization_id=organization.id, customer_type="instant")

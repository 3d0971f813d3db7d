import pytest

from fieldops.billing.ledger import reset_capabilities
from fieldops.organizations.models import Organization
from fieldops.organizations.tests.factories import OrganizationFactory


@pytest.fixture(autouse=True)
def _reset_billing_capabilities():
    """Forget the cached transaction capability between tests."""
    reset_capabilities()
    yield
    reset_capabilities()


@pytest.fixture
def org(db) -> Organization:
    return OrganizationFactory()

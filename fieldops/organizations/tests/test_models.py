import pytest

from fieldops.organizations.models import Organization
from fieldops.organizations.tests.factories import OrganizationFactory


@pytest.mark.django_db
class TestOrganization:
    def test_slug_generated_from_name(self):
        org = Organization.objects.create(name="Stroy Montazh")
        assert org.slug == "stroy-montazh"

    def test_explicit_slug_is_kept(self):
        org = OrganizationFactory(name="Anything", slug="custom-slug")
        assert org.slug == "custom-slug"

    def test_str_is_name(self):
        org = OrganizationFactory(name="Bridge Works")
        assert str(org) == "Bridge Works"

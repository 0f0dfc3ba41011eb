from django.test import RequestFactory, TestCase, override_settings

from apps.accounts.tokens import issue_access_token
from apps.tenants.resolution import (
    SOURCE_CLAIM,
    SOURCE_HEADER_ID,
    SOURCE_HEADER_SLUG,
    SOURCE_ROUTE,
    SOURCE_SUBDOMAIN,
    lookup_tenant,
    resolve_tenant_identifier,
)
from tests.factories import TenantFactory, UserFactory


class ResolveTenantIdentifierTests(TestCase):

    def setUp(self):
        self.factory = RequestFactory()
        self.tenant = TenantFactory(slug='acme')

    def test_header_id_wins_over_everything(self):
        request = self.factory.get('/', HTTP_X_TENANT_ID=str(self.tenant.pk), HTTP_X_TENANT_SLUG='other')
        self.assertEqual(resolve_tenant_identifier(request), (str(self.tenant.pk), SOURCE_HEADER_ID))

    def test_header_slug(self):
        request = self.factory.get('/', HTTP_X_TENANT_SLUG='acme')
        self.assertEqual(resolve_tenant_identifier(request), ('acme', SOURCE_HEADER_SLUG))

    def test_bearer_claim(self):
        user = UserFactory(tenant=self.tenant)
        token, _ = issue_access_token(user)
        request = self.factory.get('/', HTTP_AUTHORIZATION=f'Bearer {token}')
        self.assertEqual(resolve_tenant_identifier(request), (str(self.tenant.pk), SOURCE_CLAIM))

    def test_invalid_bearer_token_is_ignored(self):
        request = self.factory.get('/', HTTP_AUTHORIZATION='Bearer not-a-jwt')
        self.assertEqual(resolve_tenant_identifier(request), (None, None))

    @override_settings(TENANT_BASE_DOMAIN='superecom.test')
    def test_subdomain_under_base_domain(self):
        request = self.factory.get('/', HTTP_HOST='acme.superecom.test')
        self.assertEqual(resolve_tenant_identifier(request), ('acme', SOURCE_SUBDOMAIN))

        foreign = self.factory.get('/', HTTP_HOST='acme.elsewhere.test')
        self.assertEqual(resolve_tenant_identifier(foreign), (None, None))

    def test_ignored_subdomains_and_ip_hosts(self):
        for host in ('www.superecom.test', 'api.superecom.test', '10.0.0.5', 'localhost'):
            with self.subTest(host=host):
                request = self.factory.get('/', HTTP_HOST=host)
                self.assertEqual(resolve_tenant_identifier(request), (None, None))

    def test_route_parameter_is_last_resort(self):
        request = self.factory.get('/')
        self.assertEqual(resolve_tenant_identifier(request, {'tenant_slug': 'acme'}), ('acme', SOURCE_ROUTE))


class LookupTenantTests(TestCase):

    def test_by_uuid_or_slug(self):
        tenant = TenantFactory(slug='acme')
        self.assertEqual(lookup_tenant(str(tenant.pk)), tenant)
        self.assertEqual(lookup_tenant('ACME'), tenant)
        self.assertIsNone(lookup_tenant('missing'))
        self.assertIsNone(lookup_tenant(None))

    def test_soft_deleted_tenants_are_not_found(self):
        tenant = TenantFactory(slug='gone')
        tenant.soft_delete()
        self.assertIsNone(lookup_tenant('gone'))

from django.test import TestCase

from apps.inventory.models import Product
from apps.tenants.context import clear_current_tenant, set_current_tenant
from tests.factories import ProductFactory, TenantFactory, UserFactory


class TenantManagerTests(TestCase):

    def setUp(self):
        self.t1 = TenantFactory()
        self.t2 = TenantFactory()
        self.p1 = ProductFactory(tenant=self.t1)
        self.p2 = ProductFactory(tenant=self.t2)
        self.addCleanup(clear_current_tenant)

    def test_for_tenant_filters_explicitly(self):
        self.assertEqual(list(Product.objects.for_tenant(self.t1)), [self.p1])
        self.assertFalse(Product.objects.for_tenant(None).exists())
        self.assertEqual(Product.objects.count(), 2)

    def test_for_current_tenant_uses_context(self):
        set_current_tenant(self.t2)
        self.assertEqual(list(Product.objects.for_current_tenant()), [self.p2])

    def test_save_takes_tenant_from_context(self):
        set_current_tenant(self.t1)
        product = Product.objects.create(sku='CTX-1', name='Context product')
        self.assertEqual(product.tenant, self.t1)

    def test_save_without_any_tenant_fails(self):
        with self.assertRaises(ValueError):
            Product.objects.create(sku='ORPHAN-1', name='Orphan')

    def test_soft_deleted_rows_are_hidden(self):
        user = UserFactory(tenant=self.t1)
        self.p1.soft_delete(user)

        self.assertFalse(Product.objects.for_tenant(self.t1).exists())
        self.assertEqual(Product.objects.all_with_deleted().for_tenant(self.t1).get(), self.p1)
        self.assertEqual(Product.objects.deleted_only().get().deleted_by, user)

        self.p1.restore()
        self.assertTrue(Product.objects.for_tenant(self.t1).exists())

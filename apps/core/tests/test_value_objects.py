from decimal import Decimal

from django.test import SimpleTestCase

from apps.core.value_objects import Address, Awb, Dimensions, Email, Money, PhoneNumber


class MoneyTests(SimpleTestCase):

    def test_rounds_to_two_places_and_normalises_currency(self):
        money = Money('10.005', 'inr')
        self.assertEqual(money.amount, Decimal('10.01'))
        self.assertEqual(money.currency, 'INR')
        self.assertEqual(str(Money(Decimal('1234.5'))), 'INR 1,234.50')

    def test_rejects_negative_amounts_and_mixed_currencies(self):
        with self.assertRaises(ValueError):
            Money(Decimal('-1'))
        with self.assertRaises(ValueError):
            Money(Decimal('1'), 'INR') + Money(Decimal('1'), 'USD')
        with self.assertRaises(ValueError):
            Money(Decimal('1')) - Money(Decimal('2'))

    def test_arithmetic(self):
        total = Money(Decimal('100')) + Money(Decimal('50.50'))
        self.assertEqual(total.amount, Decimal('150.50'))
        self.assertEqual((total * 2).amount, Decimal('301.00'))
        self.assertTrue(Money.zero().is_zero)
        self.assertLess(Money(Decimal('1')), Money(Decimal('2')))


class AddressTests(SimpleTestCase):

    def test_requires_core_fields(self):
        with self.assertRaises(ValueError) as ctx:
            Address.from_dict({'name': 'Asha', 'city': 'Pune'})
        self.assertIn('phone', str(ctx.exception))
        self.assertIn('postal_code', str(ctx.exception))

    def test_defaults_country_and_formats_full_address(self):
        address = Address.from_dict({
            'name': ' Asha ', 'phone': '9876543210', 'line1': '12 MG Road',
            'city': 'Pune', 'state': 'Maharashtra', 'postal_code': '411001',
        })
        self.assertEqual(address.name, 'Asha')
        self.assertEqual(address.country, 'India')
        self.assertEqual(address.full_address, '12 MG Road, Pune, Maharashtra - 411001, India')


class ShippingValueTests(SimpleTestCase):

    def test_chargeable_weight_uses_volumetric_when_heavier(self):
        parcel = Dimensions(length=50, width=40, height=30, weight=Decimal('2'))
        self.assertEqual(parcel.volumetric_weight, Decimal('12.000'))
        self.assertEqual(parcel.chargeable_weight, Decimal('12.000'))

    def test_dimensions_must_be_positive(self):
        with self.assertRaises(ValueError):
            Dimensions(length=0, width=1, height=1, weight=1)

    def test_awb_is_normalised(self):
        self.assertEqual(str(Awb(' ab 123 456 ')), 'AB123456')
        with self.assertRaises(ValueError):
            Awb('12-34')


class ContactValueTests(SimpleTestCase):

    def test_email(self):
        email = Email(' Owner@Example.COM ')
        self.assertEqual(str(email), 'owner@example.com')
        self.assertEqual(email.domain, 'example.com')
        self.assertEqual(email.masked(), 'ow***@example.com')
        with self.assertRaises(ValueError):
            Email('not-an-email')

    def test_phone_number(self):
        phone = PhoneNumber('98765-43210', '91')
        self.assertEqual(phone.full, '+919876543210')
        with self.assertRaises(ValueError):
            PhoneNumber('12345')

"""
Courier adapters.

Each courier has a thin ``httpx`` client and a table mapping its status
codes to `ShipmentStatus`, used when applying courier webhooks. Results
come back as a `CourierResult`; booking results carry ``awb_number``,
``courier_name``, ``tracking_url`` and ``label_url`` plus whatever
references the courier needs later (order and shipment ids).

Operations a courier has no live integration for return an unsuccessful
`CourierResult` instead of made-up data.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .models import CourierType, ShipmentStatus

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = Decimal('0.5')
DEFAULT_DIMENSION = Decimal('10')


@dataclass
class CourierResult:
    success: bool
    message: str = ''
    data: Any = None
    errors: list = field(default_factory=list)

    @classmethod
    def ok(cls, data=None, message=''):
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, message, errors=None):
        return cls(success=False, message=message, errors=list(errors or []))


@dataclass
class CourierUpdate:
    """One status event parsed from a courier webhook."""

    awb_number: str
    status_code: str
    status_text: str = ''
    location: str = ''
    remarks: str = ''
    event_time: Optional[Any] = None
    reference: str = ''


def _number(value, default=None):
    if value is None or value == '':
        value = default
    return float(value) if value is not None else None


def parcel(shipment):
    """Weight in kg and dimensions in cm, with courier defaults for blanks."""
    return {
        'weight': _number(shipment.chargeable_weight, DEFAULT_WEIGHT),
        'length': _number(shipment.length, DEFAULT_DIMENSION),
        'width': _number(shipment.width, DEFAULT_DIMENSION),
        'height': _number(shipment.height, DEFAULT_DIMENSION),
    }


def parcel_lines(shipment):
    lines = []
    for item in shipment.items.select_related('order_item'):
        price = item.order_item.unit_price if item.order_item else Decimal('0')
        lines.append({'name': item.name, 'sku': item.sku, 'units': item.quantity, 'selling_price': float(price)})
    return lines


class BaseCourierAdapter:
    courier_type = None
    STATUS_MAP = {}

    def __init__(self, account=None, transport=None):
        self.account = account
        self.transport = transport

    @property
    def account_settings(self):
        return getattr(self.account, 'settings', None) or {}

    def base_url(self):
        return getattr(settings, 'COURIER_API_BASE_URLS', {}).get(self.courier_type, '')

    def auth_headers(self):
        return {}

    def has_credentials(self):
        return bool(self.account and self.account.api_key)

    def missing_credentials(self):
        return CourierResult.fail(f"{self.courier_type} account credentials are not configured")

    def client(self):
        headers = {'Accept': 'application/json'}
        headers.update(self.auth_headers())
        return httpx.Client(
            base_url=self.base_url(),
            headers=headers,
            timeout=getattr(settings, 'INTEGRATION_HTTP_TIMEOUT', 30.0),
            transport=self.transport,
        )

    def request(self, method, path, **kwargs):
        try:
            with self.client() as client:
                response = client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s request %s failed: %s", self.courier_type, path, exc)
            return CourierResult.fail(f"{self.courier_type} request failed: {exc}")
        if response.status_code >= 400:
            return CourierResult.fail(f"{self.courier_type} returned HTTP {response.status_code}")
        try:
            return CourierResult.ok(response.json())
        except ValueError:
            return CourierResult.fail(f"{self.courier_type} returned a non-JSON response")

    def not_implemented(self, operation):
        return CourierResult.fail(f"{self.courier_type} {operation} is not implemented")

    @classmethod
    def map_status(cls, code):
        """Internal status for a courier status code, or None when unknown."""
        if code is None:
            return None
        return cls.STATUS_MAP.get(str(code).strip().upper())

    def parse_webhook(self, payload) -> Optional[CourierUpdate]:
        raise NotImplementedError

    def validate_credentials(self):
        return self.not_implemented('credential validation')

    def get_rates(self, pickup_postal_code, delivery_postal_code, weight, is_cod=False, cod_amount=None):
        return self.not_implemented('rate lookup')

    def create_shipment(self, shipment):
        return self.not_implemented('shipment booking')

    def get_tracking(self, awb_number):
        return self.not_implemented('tracking')

    def get_label(self, shipment):
        return self.not_implemented('label generation')

    def cancel_shipment(self, shipment):
        return self.not_implemented('cancellation')

    def schedule_pickup(self, shipments, pickup_date):
        return self.not_implemented('pickup scheduling')


class ShiprocketAdapter(BaseCourierAdapter):
    """
    Shiprocket aggregates several couriers behind one API.

    The account's ``api_key`` and ``api_secret`` are the Shiprocket login
    email and password. The bearer token from ``auth/login`` is kept on
    the account as ``access_token`` and reused; clearing it forces a fresh
    login.
    Account settings understood here: ``pickup_location``, ``channel_id``
    and ``courier_id``.
    """

    courier_type = CourierType.SHIPROCKET
    TRACKING_URL = 'https://shiprocket.co/tracking/{awb}'
    STATUS_MAP = {
        '1': ShipmentStatus.MANIFESTED,
        '2': ShipmentStatus.MANIFESTED,
        '3': ShipmentStatus.MANIFESTED,
        '4': ShipmentStatus.MANIFESTED,
        '5': ShipmentStatus.MANIFESTED,
        '6': ShipmentStatus.IN_TRANSIT,
        '7': ShipmentStatus.DELIVERED,
        '8': ShipmentStatus.CANCELLED,
        '9': ShipmentStatus.RTO_INITIATED,
        '10': ShipmentStatus.RTO_DELIVERED,
        '11': ShipmentStatus.LOST,
        '12': ShipmentStatus.DELIVERY_FAILED,
        '13': ShipmentStatus.OUT_FOR_DELIVERY,
        '16': ShipmentStatus.IN_TRANSIT,
        '17': ShipmentStatus.PICKED_UP,
        '18': ShipmentStatus.PICKED_UP,
        '19': ShipmentStatus.RTO_INITIATED,
        '20': ShipmentStatus.RTO_INITIATED,
    }

    def auth_headers(self):
        token = getattr(self.account, 'access_token', '')
        return {'Authorization': f'Bearer {token}'} if token else {}

    def has_credentials(self):
        account = self.account
        return bool(account and (account.access_token or (account.api_key and account.api_secret)))

    def validate_credentials(self):
        if not self.account or not self.account.api_key or not self.account.api_secret:
            return CourierResult.fail("Shiprocket email and password are required")
        result = self.request('POST', 'auth/login', json={
            'email': self.account.api_key,
            'password': self.account.api_secret,
        })
        if result.success and not (result.data or {}).get('token'):
            return CourierResult.fail("Shiprocket did not return a token")
        return result

    def login(self):
        """Make sure the account holds a token. Returns a failed result, or None when ready."""
        if not self.has_credentials():
            return self.missing_credentials()
        if self.account.access_token:
            return None
        result = self.validate_credentials()
        if not result.success:
            return result
        self.account.access_token = result.data['token']
        if self.account.pk:
            self.account.save(update_fields=['access_token', 'updated_at'])
        return None

    def call(self, method, path, **kwargs):
        failure = self.login()
        return failure or self.request(method, path, **kwargs)

    def order_payload(self, shipment):
        order = shipment.order
        address = shipment.delivery_address or order.shipping_address or {}
        first_name, _, last_name = (address.get('name') or order.customer_name).partition(' ')
        payload = {
            'order_id': order.order_number,
            'order_date': timezone.localtime(order.order_date).strftime('%Y-%m-%d %H:%M'),
            'pickup_location': self.account_settings.get('pickup_location') or 'Primary',
            'billing_customer_name': first_name,
            'billing_last_name': last_name,
            'billing_address': address.get('line1', ''),
            'billing_address_2': address.get('line2', ''),
            'billing_city': address.get('city', ''),
            'billing_state': address.get('state', ''),
            'billing_pincode': address.get('postal_code', ''),
            'billing_country': address.get('country') or 'India',
            'billing_email': order.customer_email,
            'billing_phone': address.get('phone') or order.customer_phone,
            'shipping_is_billing': 1,
            'order_items': [
                dict(line, discount=0, tax=0, hsn='0') for line in parcel_lines(shipment)
            ],
            'payment_method': 'COD' if shipment.is_cod else 'Prepaid',
            'sub_total': float(order.subtotal or order.total_amount),
        }
        dims = parcel(shipment)
        payload.update(weight=dims['weight'], length=dims['length'], breadth=dims['width'],
                       height=dims['height'])
        if self.account_settings.get('channel_id'):
            payload['channel_id'] = self.account_settings['channel_id']
        return payload

    def create_shipment(self, shipment):
        path = 'orders/create' if self.account_settings.get('channel_id') else 'orders/create/adhoc'
        result = self.call('POST', path, json=self.order_payload(shipment))
        if not result.success:
            return result
        created = result.data or {}
        booking = {
            'order_id': created.get('order_id'),
            'shipment_id': created.get('shipment_id'),
            'awb_number': str(created.get('awb_code') or ''),
            'courier_name': created.get('courier_name') or '',
            'label_url': '',
            'tracking_url': '',
        }
        if not booking['shipment_id']:
            return CourierResult.fail(created.get('message') or "Shiprocket did not create a shipment")

        if not booking['awb_number']:
            body = {'shipment_id': booking['shipment_id']}
            if self.account_settings.get('courier_id'):
                body['courier_id'] = self.account_settings['courier_id']
            assigned = self.call('POST', 'courier/assign/awb', json=body)
            awb_data = ((assigned.data or {}).get('response') or {}).get('data') or {}
            if assigned.success and awb_data.get('awb_code'):
                booking['awb_number'] = str(awb_data['awb_code'])
                booking['courier_name'] = awb_data.get('courier_name') or booking['courier_name']
            else:
                logger.warning("Shiprocket shipment %s created without an AWB: %s", booking['shipment_id'],
                               assigned.message or (assigned.data or {}).get('message'))
                return CourierResult.ok(booking, "Shiprocket order created; AWB not assigned yet")

        booking['tracking_url'] = self.TRACKING_URL.format(awb=booking['awb_number'])
        return CourierResult.ok(booking, "Shipment booked with Shiprocket")

    def get_rates(self, pickup_postal_code, delivery_postal_code, weight, is_cod=False, cod_amount=None):
        result = self.call('GET', 'courier/serviceability/', params={
            'pickup_postcode': pickup_postal_code,
            'delivery_postcode': delivery_postal_code,
            'weight': _number(weight, DEFAULT_WEIGHT),
            'cod': 1 if is_cod else 0,
        })
        if not result.success:
            return result
        companies = ((result.data or {}).get('data') or {}).get('available_courier_companies') or []
        rates = [
            {
                'courier_id': company.get('courier_company_id') or company.get('id'),
                'courier_name': company.get('courier_name') or company.get('name') or '',
                'rate': _number(company.get('rate'), 0),
                'freight_charge': _number(company.get('freight_charge'), 0),
                'cod_charges': _number(company.get('cod_charges'), 0),
                'estimated_delivery_days': company.get('estimated_delivery_days'),
                'etd': company.get('etd') or '',
                'mode': 'Surface' if company.get('is_surface') else 'Air',
            }
            for company in companies if not company.get('blocked')
        ]
        return CourierResult.ok(sorted(rates, key=lambda rate: rate['rate']))

    def get_tracking(self, awb_number):
        return self.call('GET', f'courier/track/awb/{awb_number}')

    def get_label(self, shipment):
        shipment_id = (shipment.courier_response or {}).get('shipment_id')
        if not shipment_id:
            return CourierResult.fail("Shipment was not booked through Shiprocket")
        result = self.call('GET', 'courier/generate/label', params={'shipment_id': shipment_id})
        if not result.success:
            return result
        data = result.data or {}
        if not data.get('label_created') or not data.get('label_url'):
            return CourierResult.fail(data.get('response') or "Shiprocket did not create a label")
        return CourierResult.ok({'label_url': data['label_url']})

    def cancel_shipment(self, shipment):
        order_id = (shipment.courier_response or {}).get('order_id')
        if not order_id:
            return CourierResult.fail("Shipment was not booked through Shiprocket")
        result = self.call('POST', 'orders/cancel', json={'ids': [order_id]})
        if result.success:
            result.message = (result.data or {}).get('message') or "Shiprocket order cancelled"
        return result

    def schedule_pickup(self, shipments, pickup_date):
        shipment_ids = [(s.courier_response or {}).get('shipment_id') for s in shipments]
        if not all(shipment_ids):
            return CourierResult.fail("Every shipment must be booked through Shiprocket")
        result = self.call('POST', 'courier/generate/pickup', json={
            'shipment_id': shipment_ids,
            'pickup_date': [str(pickup_date)],
        })
        if not result.success:
            return result
        data = result.data or {}
        if data.get('pickup_status') != 1:
            return CourierResult.fail("Shiprocket did not schedule the pickup")
        return CourierResult.ok({
            'pickup_reference': str((data.get('response') or {}).get('pickup_token_number') or ''),
            'pickup_date': str(pickup_date),
        }, "Pickup scheduled")

    def parse_webhook(self, payload):
        scans = payload.get('scans') or []
        last_scan = scans[-1] if scans else {}
        return CourierUpdate(
            awb_number=str(payload.get('awb') or ''),
            status_code=str(payload.get('current_status_id') or payload.get('shipment_status_id') or ''),
            status_text=payload.get('current_status') or '',
            location=payload.get('location') or last_scan.get('location') or '',
            remarks=last_scan.get('activity') or '',
            event_time=parse_datetime(str(payload.get('current_timestamp') or '')),
            reference=str(payload.get('order_id') or ''),
        )


class DelhiveryAdapter(BaseCourierAdapter):
    """
    Delhivery B2C API, authenticated with ``Authorization: Token <api_key>``.

    Delhivery has no public rate API for most accounts, so `get_rates`
    checks pincode serviceability and prices the two service levels from
    a rate card. Account settings understood here: ``pickup_location``,
    the warehouse name registered with Delhivery.
    """

    courier_type = CourierType.DELHIVERY
    TRACKING_URL = 'https://www.delhivery.com/track/package/{awb}'
    # (mode, name, base charge, charge per kg, estimated days)
    RATE_CARD = (
        ('E', 'Delhivery Express', Decimal('50'), Decimal('25'), 2),
        ('S', 'Delhivery Surface', Decimal('35'), Decimal('15'), 5),
    )
    MIN_COD_CHARGE = Decimal('50')
    COD_RATE = Decimal('0.02')
    STATUS_MAP = {
        'UD': ShipmentStatus.MANIFESTED,
        'PP': ShipmentStatus.MANIFESTED,
        'OP': ShipmentStatus.MANIFESTED,
        'FM': ShipmentStatus.MANIFESTED,
        'PU': ShipmentStatus.PICKED_UP,
        'IT': ShipmentStatus.IN_TRANSIT,
        'RAD': ShipmentStatus.IN_TRANSIT,
        'LM': ShipmentStatus.IN_TRANSIT,
        'OC': ShipmentStatus.OUT_FOR_DELIVERY,
        'DL': ShipmentStatus.DELIVERED,
        'CN': ShipmentStatus.CANCELLED,
        'CR': ShipmentStatus.CANCELLED,
        'RTO': ShipmentStatus.RTO_INITIATED,
        'RT': ShipmentStatus.RTO_INITIATED,
        'RTD': ShipmentStatus.RTO_DELIVERED,
        'ND': ShipmentStatus.DELIVERY_FAILED,
        'DNA': ShipmentStatus.DELIVERY_FAILED,
        'LT': ShipmentStatus.LOST,
    }

    def auth_headers(self):
        token = getattr(self.account, 'api_key', '')
        return {'Authorization': f'Token {token}'} if token else {}

    def call(self, method, path, **kwargs):
        if not self.has_credentials():
            return self.missing_credentials()
        return self.request(method, path, **kwargs)

    def check_pincode(self, postal_code):
        result = self.call('GET', 'c/api/pin-codes/json/', params={'filter_codes': postal_code})
        if not result.success:
            return result
        codes = (result.data or {}).get('delivery_codes') or []
        if not codes:
            return CourierResult.fail(f"Delhivery does not deliver to {postal_code}")
        postal = codes[0].get('postal_code') or {}
        return CourierResult.ok({'postal_code': str(postal_code), 'cod': postal.get('cod') == 'Y'})

    def validate_credentials(self):
        if not self.has_credentials():
            return CourierResult.fail("Delhivery API token is required")
        result = self.call('GET', 'c/api/pin-codes/json/', params={'filter_codes': '110001'})
        if result.success:
            result.message = "Delhivery token accepted"
        return result

    def get_rates(self, pickup_postal_code, delivery_postal_code, weight, is_cod=False, cod_amount=None):
        serviceable = self.check_pincode(delivery_postal_code)
        if not serviceable.success:
            return serviceable
        if is_cod and not serviceable.data['cod']:
            return CourierResult.fail(f"Delhivery does not collect cash on delivery at {delivery_postal_code}")

        weight = Decimal(str(weight or DEFAULT_WEIGHT))
        chargeable = max(DEFAULT_WEIGHT, Decimal(math.ceil(weight * 2)) / 2)
        cod_charge = Decimal('0')
        if is_cod:
            cod_charge = max(self.MIN_COD_CHARGE, Decimal(str(cod_amount or 0)) * self.COD_RATE)
        rates = []
        for mode, name, base, per_kg, days in self.RATE_CARD:
            freight = base + per_kg * chargeable
            rates.append({
                'courier_id': mode,
                'courier_name': name,
                'rate': float(freight + cod_charge),
                'freight_charge': float(freight),
                'cod_charges': float(cod_charge),
                'estimated_delivery_days': days,
                'etd': '',
                'mode': 'Express' if mode == 'E' else 'Surface',
            })
        return CourierResult.ok(sorted(rates, key=lambda rate: rate['rate']), "Estimated from the rate card")

    def fetch_waybill(self):
        result = self.call('GET', 'waybill/api/fetch/json/', params={'count': 1})
        if not result.success:
            return ''
        data = result.data
        if isinstance(data, dict):
            data = data.get('waybill') or ''
        return str(data or '').split(',')[0].strip()

    def shipment_payload(self, shipment, waybill):
        order = shipment.order
        address = shipment.delivery_address or order.shipping_address or {}
        pickup = shipment.pickup_address or {}
        lines = parcel_lines(shipment)
        dims = parcel(shipment)
        warehouse = self.account_settings.get('pickup_location') or pickup.get('name', '')
        return {
            'shipments': [{
                'name': address.get('name') or order.customer_name,
                'add': ', '.join(filter(None, (address.get('line1'), address.get('line2')))),
                'pin': address.get('postal_code', ''),
                'city': address.get('city', ''),
                'state': address.get('state', ''),
                'country': address.get('country') or 'India',
                'phone': address.get('phone') or order.customer_phone,
                'order': order.order_number,
                'payment_mode': 'COD' if shipment.is_cod else 'Prepaid',
                'cod_amount': float(shipment.cod_amount) if shipment.is_cod else 0,
                'total_amount': float(order.total_amount),
                'order_date': timezone.localtime(order.order_date).strftime('%Y-%m-%d %H:%M:%S'),
                'products_desc': ', '.join(line['name'] for line in lines),
                'quantity': sum(line['units'] for line in lines),
                'waybill': waybill,
                'weight': round(dims['weight'] * 1000),
                'shipment_length': dims['length'],
                'shipment_width': dims['width'],
                'shipment_height': dims['height'],
                'return_name': warehouse,
                'return_add': pickup.get('line1', ''),
                'return_city': pickup.get('city', ''),
                'return_state': pickup.get('state', ''),
                'return_pin': pickup.get('postal_code', ''),
                'return_phone': pickup.get('phone', ''),
                'return_country': pickup.get('country') or 'India',
            }],
            'pickup_location': {
                'name': warehouse,
                'add': pickup.get('line1', ''),
                'city': pickup.get('city', ''),
                'pin_code': pickup.get('postal_code', ''),
                'phone': pickup.get('phone', ''),
            },
        }

    def create_shipment(self, shipment):
        if not self.has_credentials():
            return self.missing_credentials()
        waybill = self.fetch_waybill()
        result = self.call('POST', 'api/cmu/create.json', data={
            'format': 'json',
            'data': json.dumps(self.shipment_payload(shipment, waybill)),
        })
        if not result.success:
            return result
        data = result.data or {}
        package = (data.get('packages') or [{}])[0]
        awb = str(package.get('waybill') or '')
        if not data.get('success') or not awb:
            remarks = package.get('remarks') or data.get('rmk') or "Delhivery rejected the shipment"
            if isinstance(remarks, list):
                remarks = '; '.join(str(r) for r in remarks)
            return CourierResult.fail(str(remarks))
        return CourierResult.ok({
            'awb_number': awb,
            'courier_name': 'Delhivery',
            'reference': package.get('refnum') or shipment.order.order_number,
            'label_url': '',
            'tracking_url': self.TRACKING_URL.format(awb=awb),
        }, "Shipment booked with Delhivery")

    def get_tracking(self, awb_number):
        return self.call('GET', 'api/v1/packages/json/', params={'waybill': awb_number})

    def get_label(self, shipment):
        if not shipment.awb_number:
            return CourierResult.fail("Shipment has no AWB yet")
        result = self.call('GET', 'api/p/packing_slip', params={'wbns': shipment.awb_number, 'pdf': 'true'})
        if not result.success:
            return result
        packages = (result.data or {}).get('packages') or []
        link = packages[0].get('pdf_download_link') if packages else ''
        if not link:
            return CourierResult.fail("Delhivery did not return a label")
        return CourierResult.ok({'label_url': link})

    def cancel_shipment(self, shipment):
        if not shipment.awb_number:
            return CourierResult.fail("Shipment has no AWB yet")
        result = self.call('POST', 'api/p/edit', json={'waybill': shipment.awb_number, 'cancellation': 'true'})
        if not result.success:
            return result
        data = result.data or {}
        if not data.get('status'):
            return CourierResult.fail(str(data.get('remarks') or "Delhivery did not cancel the shipment"))
        return CourierResult.ok(data, str(data.get('remarks') or "Shipment cancelled"))

    def schedule_pickup(self, shipments, pickup_date):
        result = self.call('POST', 'fm/request/new/', json={
            'pickup_time': self.account_settings.get('pickup_time') or '14:00:00',
            'pickup_date': str(pickup_date),
            'pickup_location': self.account_settings.get('pickup_location') or '',
            'expected_package_count': len(shipments),
        })
        if not result.success:
            return result
        data = result.data or {}
        if not data.get('pickup_id'):
            return CourierResult.fail(str(data.get('error') or data.get('prepaid') or
                                          "Delhivery did not schedule the pickup"))
        return CourierResult.ok({'pickup_reference': str(data['pickup_id']), 'pickup_date': str(pickup_date)},
                                "Pickup scheduled")

    def parse_webhook(self, payload):
        return CourierUpdate(
            awb_number=str(payload.get('waybill') or ''),
            status_code=str(payload.get('status_code') or payload.get('StatusCode') or ''),
            status_text=payload.get('status') or payload.get('Status') or '',
            location=payload.get('location') or '',
            remarks=payload.get('remarks') or '',
            event_time=parse_datetime(str(payload.get('timestamp') or '')),
            reference=str(payload.get('reference_number') or payload.get('ReferenceNumber') or ''),
        )


class BlueDartAdapter(BaseCourierAdapter):
    courier_type = CourierType.BLUEDART
    STATUS_MAP = {
        'PKF': ShipmentStatus.MANIFESTED,
        'PKD': ShipmentStatus.PICKED_UP,
        'IT': ShipmentStatus.IN_TRANSIT,
        'LD': ShipmentStatus.IN_TRANSIT,
        'OD': ShipmentStatus.OUT_FOR_DELIVERY,
        'DL': ShipmentStatus.DELIVERED,
        'ND': ShipmentStatus.DELIVERY_FAILED,
        'DLE': ShipmentStatus.DELIVERY_FAILED,
        'HD': ShipmentStatus.DELIVERY_FAILED,
        'CN': ShipmentStatus.CANCELLED,
        'RTO': ShipmentStatus.RTO_INITIATED,
        'RTD': ShipmentStatus.RTO_DELIVERED,
        'LST': ShipmentStatus.LOST,
    }

    def parse_webhook(self, payload):
        return CourierUpdate(
            awb_number=str(payload.get('AWBNo') or ''),
            status_code=str(payload.get('StatusCode') or ''),
            status_text=payload.get('Status') or '',
            location=payload.get('StatusLocation') or '',
            remarks=payload.get('Remarks') or '',
            reference=str(payload.get('ReferenceNo') or ''),
        )


class DtdcAdapter(BaseCourierAdapter):
    courier_type = CourierType.DTDC
    STATUS_MAP = {
        'BKD': ShipmentStatus.MANIFESTED,
        'PKD': ShipmentStatus.PICKED_UP,
        'ITR': ShipmentStatus.IN_TRANSIT,
        'ARR': ShipmentStatus.IN_TRANSIT,
        'OFD': ShipmentStatus.OUT_FOR_DELIVERY,
        'DLV': ShipmentStatus.DELIVERED,
        'UND': ShipmentStatus.DELIVERY_FAILED,
        'DLY': ShipmentStatus.DELIVERY_FAILED,
        'CNL': ShipmentStatus.CANCELLED,
        'RTO': ShipmentStatus.RTO_INITIATED,
        'RTN': ShipmentStatus.RTO_DELIVERED,
        'LST': ShipmentStatus.LOST,
    }

    def parse_webhook(self, payload):
        return CourierUpdate(
            awb_number=str(payload.get('consignmentNumber') or ''),
            status_code=str(payload.get('statusCode') or ''),
            status_text=payload.get('status') or '',
            location=payload.get('location') or '',
            remarks=payload.get('remarks') or '',
            reference=str(payload.get('referenceNumber') or ''),
        )


COURIER_ADAPTERS = {
    adapter.courier_type: adapter
    for adapter in (ShiprocketAdapter, DelhiveryAdapter, BlueDartAdapter, DtdcAdapter)
}

# URL slugs used by the inbound courier webhook route.
COURIER_SLUGS = {courier_type.lower(): courier_type for courier_type in COURIER_ADAPTERS}


def get_courier_adapter(courier_type, account=None, transport=None):
    adapter_class = COURIER_ADAPTERS.get(courier_type) or COURIER_ADAPTERS.get(
        COURIER_SLUGS.get(str(courier_type).lower(), ''))
    if adapter_class is None:
        raise ValueError(f"No adapter available for courier '{courier_type}'")
    return adapter_class(account, transport=transport)

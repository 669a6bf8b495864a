"""Database fixtures shared by the dispatch test modules."""

from decimal import Decimal

from accounts.models import User
from common.utils.geo import Coordinates
from drivers.models import DriverProfile
from orders.models import Order, Store


def create_driver(username, latitude, longitude, rating="4.50", token=None, status="available"):
    user = User.objects.create_user(
        username=username,
        password="driver1234",
        role="driver",
        phone_number="5145550000",
    )
    DriverProfile.objects.create(
        user=user,
        vehicle_number=f"QC-{username.upper()}",
        status=status,
        current_latitude=latitude,
        current_longitude=longitude,
        rating=Decimal(rating),
        notification_token=token if token is not None else f"fcm-{username}",
    )
    return user


def driver_point(latitude, longitude):
    """Coordinates exactly as the DriverPool will read them back."""
    return Coordinates(float(Decimal(str(latitude))), float(Decimal(str(longitude))))


def create_store(name="Epicerie Centrale", latitude="45.508000", longitude="-73.561000"):
    return Store.objects.create(
        name=name,
        address="1500 Rue Peel",
        city="Montreal",
        latitude=latitude,
        longitude=longitude,
    )


def create_order(store, number="A-1001", status="confirmed"):
    return Order.objects.create(
        order_number=number,
        store=store,
        delivery_address="4200 Boulevard Saint-Laurent",
        delivery_city="Montreal",
        delivery_postal_code="H2W 2R2",
        total_amount=Decimal("42.50"),
        delivery_fee=Decimal("5.00"),
        status=status,
    )

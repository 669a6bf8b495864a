from rest_framework import serializers
from drivers.models import DriverProfile
from accounts.serializers import UserBasicSerializer


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Full driver profile serializer
    """
    user = UserBasicSerializer(read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "user",
            "vehicle_number",
            "status",
            "is_active",
            "current_latitude",
            "current_longitude",
            "last_location_update",
            "rating",
            "completed_deliveries",
        ]
        read_only_fields = fields


class DriverStatusSerializer(serializers.Serializer):
    """
    Serializer for updating driver availability (available/offline).
    """
    status = serializers.ChoiceField(choices=["available", "offline"])


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)


class NotificationTokenSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=255)

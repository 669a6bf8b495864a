from rest_framework import serializers
from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """Public identity of a user as shown on dispatch payloads."""
    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "name", "role", "phone_number"]
        read_only_fields = fields

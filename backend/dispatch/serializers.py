from rest_framework import serializers

from .models import Assignment, NotificationAttempt


class NotificationAttemptSerializer(serializers.ModelSerializer):
    """Per-driver delivery receipt"""

    class Meta:
        model = NotificationAttempt
        fields = ['driver', 'rank', 'distance_km', 'success', 'error', 'sent_at',
                  'response', 'responded_at']
        read_only_fields = fields


class AssignmentSerializer(serializers.ModelSerializer):
    """Full assignment state, including who was notified and how they answered"""
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    attempts = NotificationAttemptSerializer(many=True, read_only=True)

    class Meta:
        model = Assignment
        fields = ['id', 'order', 'order_number', 'store', 'attempt', 'radius_km',
                  'candidate_driver_ids', 'notified_driver_ids', 'total_amount',
                  'delivery_fee', 'status', 'claimed_by', 'created_at', 'expires_at',
                  'notified_at', 'resolved_at', 'failure_reason', 'attempts']
        read_only_fields = fields


class DriverOfferSerializer(serializers.ModelSerializer):
    """What a driver needs to decide on an open offer"""
    assignment_id = serializers.UUIDField(source='id', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    store_name = serializers.CharField(source='store.name', read_only=True)
    store_address = serializers.CharField(source='store.address', read_only=True)
    delivery_address = serializers.CharField(source='order.delivery_address', read_only=True)
    delivery_city = serializers.CharField(source='order.delivery_city', read_only=True)
    distance_km = serializers.SerializerMethodField()

    class Meta:
        model = Assignment
        fields = ['assignment_id', 'order', 'order_number', 'store_name', 'store_address',
                  'delivery_address', 'delivery_city', 'total_amount', 'delivery_fee',
                  'distance_km', 'expires_at']
        read_only_fields = fields

    def get_distance_km(self, obj):
        driver_id = self.context.get('driver_id')
        for attempt in obj.attempts.all():
            if attempt.driver_id == driver_id:
                return round(attempt.distance_km, 2)
        return None

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import DriverProfile
from drivers.serializers import (
    DriverProfileSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
    NotificationTokenSerializer,
)

from drivers import services

# Utility: Ensure request.user is a driver
def require_driver(user):
    if user.role != "driver":
        return False, Response({"error": "Only drivers allowed"}, status=403)
    try:
        profile = user.driver_profile
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found"}, status=404)


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile  # Response object

        serializer = DriverProfileSerializer(profile, context={"request": request})
        return Response(serializer.data)


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({"status": profile.status})

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        services.update_driver_status(profile, new_status)

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status
        })


class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "status": profile.status,
        })

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        services.update_driver_location(profile, lat, lon)

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
            "status": profile.status
        })


class DriverNotificationTokenView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = NotificationTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        services.update_notification_token(profile, serializer.validated_data["token"])
        return Response({"message": "Notification token registered"})

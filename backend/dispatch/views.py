import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from services.dispatch_management import (
    AlreadyClaimed,
    AssignmentCancelled,
    AssignmentExpired,
    AssignmentNotFound,
    DispatchError,
    DriverNotEligible,
    GeocodingFailed,
    InvalidState,
    NoDriversAvailable,
    NotificationDeliveryFailed,
    OrderNotFound,
    get_coordinator,
)
from .models import Assignment
from .serializers import AssignmentSerializer, DriverOfferSerializer

logger = logging.getLogger(__name__)

# Most specific first: AssignmentCancelled is an InvalidState
DISPATCH_ERROR_STATUS = [
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (AssignmentNotFound, status.HTTP_404_NOT_FOUND),
    (AssignmentCancelled, status.HTTP_410_GONE),
    (AssignmentExpired, status.HTTP_410_GONE),
    (AlreadyClaimed, status.HTTP_409_CONFLICT),
    (InvalidState, status.HTTP_409_CONFLICT),
    (DriverNotEligible, status.HTTP_403_FORBIDDEN),
    (GeocodingFailed, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotificationDeliveryFailed, status.HTTP_502_BAD_GATEWAY),
]

OPERATOR_ROLES = ('merchant', 'admin')


def error_response(exc):
    """Map an expected dispatch outcome to an HTTP response."""
    http_status = status.HTTP_400_BAD_REQUEST
    for exc_class, mapped in DISPATCH_ERROR_STATUS:
        if isinstance(exc, exc_class):
            http_status = mapped
            break
    return Response(
        {'success': False, 'error': exc.code, 'message': str(exc)},
        status=http_status
    )


def is_operator(user):
    return user.is_staff or user.role in OPERATOR_ROLES


def forbidden(message):
    return Response({'error': message}, status=status.HTTP_403_FORBIDDEN)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def dispatch_order(request, order_id):
    """
    Dispatch a confirmed order now (operators).

    Normally dispatch runs in the background when the order is confirmed;
    this endpoint is for manual re-dispatch of escalated orders.
    """
    if not is_operator(request.user):
        return forbidden('Only merchants and admins can dispatch orders')

    try:
        outcome = get_coordinator().dispatch(order_id)
    except NoDriversAvailable as exc:
        # Legitimate outcome, not a failure of the request
        return Response({
            'success': False,
            'error': exc.code,
            'message': str(exc),
            'available_drivers': 0,
        }, status=status.HTTP_200_OK)
    except (DispatchError, GeocodingFailed) as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'assignment': AssignmentSerializer(outcome.assignment).data,
        'available_drivers': outcome.available_drivers,
        'notifications_sent': outcome.notifications_sent,
        'notifications_failed': outcome.notifications_failed,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_order_dispatch(request, order_id):
    """Withdraw every open offer for an order (operators)."""
    if not is_operator(request.user):
        return forbidden('Only merchants and admins can cancel dispatch')

    cancelled = get_coordinator().cancel(order_id)
    return Response({
        'success': True,
        'order_id': order_id,
        'cancelled_assignments': [str(a.id) for a in cancelled],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def claim_assignment(request, assignment_id):
    """Driver accepts an offer. Exactly one driver wins per assignment."""
    if request.user.role != 'driver':
        return forbidden('Only drivers can claim assignments')

    try:
        assignment = get_coordinator().claim(assignment_id, request.user.id)
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': 'Delivery assigned to you',
        'assignment': AssignmentSerializer(assignment).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reject_assignment(request, assignment_id):
    """Driver declines an offer."""
    if request.user.role != 'driver':
        return forbidden('Only drivers can reject assignments')

    try:
        assignment = get_coordinator().reject(assignment_id, request.user.id)
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': 'Offer rejected',
        'assignment_id': str(assignment.id),
        'status': assignment.status,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def assignment_detail(request, assignment_id):
    """Assignment state with per-driver attempts (operators and notified drivers)."""
    try:
        assignment = Assignment.objects.select_related('order').get(pk=assignment_id)
    except Assignment.DoesNotExist:
        return Response({'error': 'Assignment not found'}, status=status.HTTP_404_NOT_FOUND)

    if not is_operator(request.user) and request.user.id not in assignment.notified_driver_ids:
        return forbidden('You were not offered this assignment')

    return Response(AssignmentSerializer(assignment).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def driver_offers(request):
    """
    Open offers for the calling driver (POLLING ENDPOINT)

    Driver app polls this when it cannot hold a WebSocket open.
    """
    if request.user.role != 'driver':
        return forbidden('Only drivers can list offers')

    offers = get_coordinator().offers_for_driver(request.user.id)
    serializer = DriverOfferSerializer(offers, many=True, context={'driver_id': request.user.id})
    return Response({
        'count': len(offers),
        'offers': serializer.data,
    })

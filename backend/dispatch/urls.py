from django.urls import path
from . import views

urlpatterns = [
    # Operator actions
    path('orders/<int:order_id>/dispatch/', views.dispatch_order, name='dispatch-order'),
    path('orders/<int:order_id>/cancel/', views.cancel_order_dispatch, name='cancel-order-dispatch'),

    # Driver actions
    path('assignments/<uuid:assignment_id>/', views.assignment_detail, name='assignment-detail'),
    path('assignments/<uuid:assignment_id>/claim/', views.claim_assignment, name='claim-assignment'),
    path('assignments/<uuid:assignment_id>/reject/', views.reject_assignment, name='reject-assignment'),
    path('driver/offers/', views.driver_offers, name='driver-offers'),
]

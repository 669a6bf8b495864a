from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Driver APIs (status, location)
    path('api/driver/', include('drivers.urls')),

    # Dispatch endpoints (dispatch / cancel orders, claim / reject assignments)
    path('api/dispatch/', include('dispatch.urls')),
]

from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


# Health check endpoint for load balancers and container orchestration
def health_check(request):
    return JsonResponse({'status': 'healthy', 'app': 'subscription-listener'})


urlpatterns = [
    path('health/', health_check, name='health_check'),
    path('admin/', admin.site.urls),

    # -------------------------
    # Subscriptions: listing, skip, switch, remote-mapped updates
    # -------------------------
    path('', include('subscriptions.urls')),
]

# subscriptions/urls.py
"""
URL patterns for subscriptions app.
"""

from django.urls import path
from subscriptions import views

urlpatterns = [
    # Customer listings (?shopify_id=)
    path('subscriptions', views.subscriptions_view, name='subscriptions'),
    path('skippable_subscriptions', views.skippable_subscriptions_view, name='skippable_subscriptions'),

    # Single subscription
    path('subscription/<int:subscription_id>', views.subscription_view, name='subscription'),
    path('subscription/<int:subscription_id>/sizes', views.subscription_sizes_view, name='subscription_sizes'),

    # Subscription actions
    path('subscription/<int:subscription_id>/skip', views.skip_view, name='subscription_skip'),
    path('subscription/<int:subscription_id>/switch', views.switch_view, name='subscription_switch'),
]

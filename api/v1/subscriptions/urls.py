"""
URL configuration for owner subscription API endpoints.
"""

from django.urls import path

from api.v1.subscriptions import views

urlpatterns = [
    path(
        "<uuid:owner_id>/transitions/",
        views.LifecycleTransitionView.as_view(),
        name="apply-lifecycle-transition",
    ),
    path(
        "<uuid:owner_id>/subscription/",
        views.SubscriptionStatusView.as_view(),
        name="get-subscription-status",
    ),
]

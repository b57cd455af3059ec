"""
URL configuration for payment API endpoints.
"""

from django.urls import path

from api.v1.payments import views

urlpatterns = [
    path(
        "payments/sessions/<str:session_ref>/confirm/",
        views.ConfirmPaymentSessionView.as_view(),
        name="confirm-payment-session",
    ),
    path("webhooks/billing/", views.BillingWebhookView.as_view(), name="billing-webhook"),
]

"""
URL configuration for activation API endpoints.
"""

from django.urls import path

from api.v1.activations import views

urlpatterns = [
    path("verify/", views.VerifyActivationView.as_view(), name="verify-activation"),
]

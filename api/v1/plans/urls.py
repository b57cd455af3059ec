"""
URL configuration for plan catalog endpoints.
"""

from django.urls import path

from api.v1.plans import views

urlpatterns = [
    path("", views.PlanListView.as_view(), name="list-plans"),
]

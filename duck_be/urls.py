from django.urls import path, include

urlpatterns = [
    path("api/", include("chat.urls")),
    path("", include("django_prometheus.urls")),
]

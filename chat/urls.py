from django.urls import path
from . import views

app_name = "chat"

urlpatterns = [
    path("chat/", views.chat, name="chat"),
    path("generate-title/", views.generate_title, name="generate_title"),
    path("summarize/", views.summarize, name="summarize"),
    path("memory-context/", views.memory_context, name="memory_context"),
    path("models/", views.models, name="models"),
    path("status/", views.status, name="status"),
]

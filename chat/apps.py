from django.apps import AppConfig


class ChatConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"

    def ready(self):
        from django.conf import settings

        from . import checks  # noqa: F401
        from .config import DuckConfig

        self.duck = DuckConfig.from_settings(settings)

from django.apps import AppConfig


class LuckyDrawConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "luckydraw"
    verbose_name = "Lucky Draw"

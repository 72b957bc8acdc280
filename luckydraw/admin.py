from django.contrib import admin

from .models import EventSettings, Participant, Reward
from .records import recompute_remaining
from .services import generate_reward_id


@admin.register(Reward)
class RewardAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "total_quantity", "remaining_quantity")
    search_fields = ("name",)
    ordering = ("created_at",)
    readonly_fields = ("remaining_quantity", "winners")

    def save_model(self, request, obj, form, change):
        if not change:
            obj.id = generate_reward_id()
        obj.remaining_quantity = recompute_remaining(
            obj.total_quantity, len(obj.winners or [])
        )
        super().save_model(request, obj, form, change)


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ("position", "name")
    search_fields = ("name",)
    ordering = ("position",)


@admin.register(EventSettings)
class EventSettingsAdmin(admin.ModelAdmin):
    list_display = ("draw_mode", "show_congratulation_modal", "updated_at")

from __future__ import annotations

from django.db import models

from .records import DrawMode, DrawSettings, RewardRecord


class Reward(models.Model):
    """A prize pool with a fixed quota and the ordered list of its winners."""

    id = models.CharField(max_length=32, primary_key=True, editable=False)
    name = models.CharField(max_length=255)
    image = models.CharField(max_length=500)
    total_quantity = models.PositiveIntegerField()
    remaining_quantity = models.PositiveIntegerField()
    winners = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.remaining_quantity}/{self.total_quantity})"

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "totalQuantity": self.total_quantity,
            "remainingQuantity": self.remaining_quantity,
            "winners": list(self.winners or []),
        }

    def to_record(self) -> RewardRecord:
        return RewardRecord.from_payload(self.to_payload())


class Participant(models.Model):
    """One row of the imported roster, kept in upload order."""

    position = models.PositiveIntegerField()
    name = models.CharField(max_length=255)

    class Meta:
        ordering = ["position", "id"]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return self.name


class EventSettings(models.Model):
    """Single-row presentation settings for the draw screen."""

    DRAW_MODE_CHOICES = [(mode.value, mode.value) for mode in DrawMode]

    background_image = models.CharField(max_length=500, blank=True, default="")
    audio_url = models.CharField(max_length=500, blank=True, default="")
    draw_mode = models.CharField(
        max_length=16,
        choices=DRAW_MODE_CHOICES,
        default=DrawMode.ONE_BY_ONE.value,
    )
    show_congratulation_modal = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Event Settings"
        verbose_name_plural = "Event Settings"

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return f"Event settings ({self.draw_mode})"

    @classmethod
    def load(cls) -> "EventSettings":
        instance, _ = cls.objects.get_or_create(pk=1)
        return instance

    def to_settings(self) -> DrawSettings:
        return DrawSettings(
            background_image=self.background_image,
            audio_url=self.audio_url,
            draw_mode=DrawMode(self.draw_mode),
            show_congratulation_modal=self.show_congratulation_modal,
        )

from django.urls import path

from . import views


app_name = "luckydraw"

urlpatterns = [
    path("rewards/", views.rewards_collection, name="rewards"),
    path("rewards/<str:reward_id>/", views.reward_detail, name="reward_detail"),
    path("rewards/<str:reward_id>/draw/", views.draw_reward, name="draw_reward"),
    path("settings/", views.event_settings, name="settings"),
    path("participants/", views.participants, name="participants"),
    path("upload/participants/", views.upload_participants, name="upload_participants"),
    path("upload/reward/", views.upload_reward_image, name="upload_reward_image"),
    path("upload/background/", views.upload_background, name="upload_background"),
    path("upload/audio/", views.upload_audio, name="upload_audio"),
    path("export/winners/", views.export_winners, name="export_winners"),
]

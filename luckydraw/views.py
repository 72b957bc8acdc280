import json
import logging
from typing import Any, Dict

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from . import services
from .animator import ReelAnimator
from .cache import RewardCache
from .engine import DrawEngine, LoggingPresenter, Pacing
from .locks import DrawLockError, reward_draw_lock
from .records import DrawMode
from .spreadsheets import (
    XLSX_CONTENT_TYPE,
    ParticipantImportError,
    build_winners_workbook,
    export_filename,
    parse_participants,
)
from .uploads import UploadRejected, save_audio, save_image

logger = logging.getLogger(__name__)

DRAW_LOCK_TIMEOUT = getattr(settings, "LUCKYDRAW_DRAW_LOCK_TIMEOUT", 5)
PARTICIPANT_MAX_BYTES = getattr(
    settings, "LUCKYDRAW_PARTICIPANT_MAX_BYTES", 5 * 1024 * 1024
)
REEL_DURATION = getattr(settings, "LUCKYDRAW_REEL_DURATION", 5.0)
REEL_NOISE = getattr(settings, "LUCKYDRAW_REEL_NOISE", 40)


class BadRequest(Exception):
    """Raised when a request body cannot be used."""


def _json_error(message: str, status: int = 400) -> JsonResponse:
    return JsonResponse({"success": False, "error": message}, status=status)


def _parse_body(request) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BadRequest(f"Request body is not valid JSON: {exc}")
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


# Rewards ----------------------------------------------------------------


@csrf_exempt
@require_http_methods(["GET", "POST"])
def rewards_collection(request):
    if request.method == "GET":
        rewards = [reward.to_payload() for reward in services.list_rewards()]
        return JsonResponse({"rewards": rewards}, json_dumps_params={"ensure_ascii": False})

    try:
        payload = _parse_body(request)
        reward = services.create_reward(
            payload.get("name"), payload.get("image"), payload.get("totalQuantity")
        )
    except (BadRequest, services.RewardValidationError) as exc:
        return _json_error(str(exc), status=400)
    except DrawLockError as exc:
        return _json_error(str(exc), status=503)
    return JsonResponse(
        {"success": True, "reward": reward.to_payload()},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["PUT", "DELETE"])
def reward_detail(request, reward_id: str):
    try:
        if request.method == "DELETE":
            services.delete_reward(reward_id)
            return JsonResponse({"success": True, "message": "Reward deleted successfully"})
        reward = services.update_reward(reward_id, _parse_body(request))
    except services.RewardNotFound as exc:
        return _json_error(str(exc), status=404)
    except (BadRequest, services.RewardValidationError) as exc:
        return _json_error(str(exc), status=400)
    except services.RewardConsistencyError as exc:
        return _json_error(str(exc), status=409)
    except DrawLockError as exc:
        return _json_error(str(exc), status=503)
    return JsonResponse(
        {"success": True, "reward": reward.to_payload()},
        json_dumps_params={"ensure_ascii": False},
    )


def _build_engine() -> DrawEngine:
    cache = RewardCache(services.DjangoRewardStore())
    cache.refresh()
    animator = ReelAnimator(duration=REEL_DURATION, noise_length=REEL_NOISE, realtime=False)
    return DrawEngine(
        cache,
        animator,
        services.list_participants,
        settings=services.get_draw_settings,
        presenter=LoggingPresenter(),
        pacing=Pacing(congratulation_hold=0, congratulation_gap=0, silent_pause=0),
    )


@csrf_exempt
@require_http_methods(["POST"])
def draw_reward(request, reward_id: str):
    """Run a draw for one reward and return the winners with their reel plans."""

    try:
        payload = _parse_body(request) if request.content_type == "application/json" else {}
    except BadRequest as exc:
        return _json_error(str(exc), status=400)

    raw_mode = request.GET.get("mode") or payload.get("mode")
    try:
        mode = DrawMode(raw_mode) if raw_mode else None
    except ValueError:
        return _json_error("mode must be 'one-by-one' or 'all-at-once'", status=400)

    try:
        with reward_draw_lock(DRAW_LOCK_TIMEOUT):
            services.get_reward(reward_id)
            sequence = _build_engine().draw(reward_id, mode)
            reward = services.get_reward(reward_id)
    except DrawLockError as exc:
        return _json_error(str(exc), status=503)
    except services.RewardNotFound as exc:
        return _json_error(str(exc), status=404)

    logger.info(
        "Draw for %s finished: %s winners, aborted=%s",
        reward_id,
        len(sequence.winners),
        sequence.aborted,
    )
    return JsonResponse(
        {
            "success": True,
            "mode": sequence.mode.value,
            "winners": sequence.winners,
            "aborted": sequence.aborted,
            "steps": [step.to_payload() for step in sequence.steps],
            "reward": reward.to_payload(),
        },
        json_dumps_params={"ensure_ascii": False},
    )


# Settings ---------------------------------------------------------------


@csrf_exempt
@require_http_methods(["GET", "POST"])
def event_settings(request):
    if request.method == "GET":
        return JsonResponse(services.get_settings_payload())
    try:
        updated = services.update_settings(_parse_body(request))
    except (BadRequest, services.SettingsValidationError) as exc:
        return _json_error(str(exc), status=400)
    return JsonResponse({"success": True, "settings": updated})


# Participants -----------------------------------------------------------


@require_http_methods(["GET"])
def participants(request):
    names = services.list_participants()
    return JsonResponse(
        {"participants": names, "count": len(names)},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["POST"])
def upload_participants(request):
    upload = request.FILES.get("file")
    if upload is None:
        return _json_error("No file provided", status=400)
    try:
        names = parse_participants(
            upload.read(),
            upload.name,
            upload.content_type,
            max_bytes=PARTICIPANT_MAX_BYTES,
        )
    except ParticipantImportError as exc:
        return _json_error(str(exc), status=400)

    services.replace_participants(names)
    return JsonResponse(
        {
            "success": True,
            "participants": names,
            "count": len(names),
            "fileName": upload.name,
        },
        json_dumps_params={"ensure_ascii": False},
    )


# Media uploads ----------------------------------------------------------


def _upload_response(upload, key: str, url: str) -> JsonResponse:
    return JsonResponse(
        {
            "success": True,
            key: url,
            "fileName": url.rsplit("/", 1)[-1],
            "fileSize": upload.size,
            "fileType": upload.content_type,
        }
    )


@csrf_exempt
@require_http_methods(["POST"])
def upload_reward_image(request):
    upload = request.FILES.get("file")
    if upload is None:
        return _json_error("No file provided", status=400)
    try:
        url = save_image(upload, folder="rewards", prefix="reward")
    except UploadRejected as exc:
        return _json_error(str(exc), status=400)
    return _upload_response(upload, "imageUrl", url)


@csrf_exempt
@require_http_methods(["POST"])
def upload_background(request):
    upload = request.FILES.get("file")
    if upload is None:
        return _json_error("No file provided", status=400)
    try:
        url = save_image(upload, folder="backgrounds", prefix="background")
    except UploadRejected as exc:
        return _json_error(str(exc), status=400)
    services.update_settings({"backgroundImage": url})
    return _upload_response(upload, "backgroundImage", url)


@csrf_exempt
@require_http_methods(["POST"])
def upload_audio(request):
    upload = request.FILES.get("file")
    if upload is None:
        return _json_error("No file provided", status=400)
    try:
        url = save_audio(upload)
    except UploadRejected as exc:
        return _json_error(str(exc), status=400)
    return _upload_response(upload, "audioUrl", url)


# Export -----------------------------------------------------------------


@require_http_methods(["GET"])
def export_winners(request):
    rewards = [reward.to_record() for reward in services.list_rewards()]
    if not rewards:
        return _json_error("No rewards data found", status=404)

    response = HttpResponse(build_winners_workbook(rewards), content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f'attachment; filename="{export_filename()}"'
    return response

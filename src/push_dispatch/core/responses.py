"""JSON response bodies returned to the caller of a dispatch."""

from push_dispatch.types import Completed, Delivering, DeviceOutcome, DispatchResult


def outcome_to_dict(outcome: DeviceOutcome) -> dict[str, object]:
    body: dict[str, object] = {
        "deviceId": outcome.device_id,
        "deviceName": outcome.display_name,
        "success": outcome.success,
        "durationMs": outcome.duration_ms,
    }
    if outcome.success:
        body["messageId"] = outcome.provider_message_id
    else:
        body["errorKind"] = outcome.error_kind.value if outcome.error_kind else None
        body["error"] = outcome.error_message
        body["autoCleaned"] = outcome.auto_cleaned
    return body


def result_to_dict(result: DispatchResult) -> dict[str, object]:
    """Render a dispatch result in the wire format the chat clients expect.

    Examples:
        >>> result_to_dict(Delivering(device_count=3))
        {'success': True, 'status': 'delivering', 'devices': 3}
        >>> result_to_dict(Completed(total=0, succeeded=0, failed=0))["status"]
        'no_devices'
    """
    match result:
        case Delivering(device_count=count):
            return {"success": True, "status": "delivering", "devices": count}
        case Completed(total=0):
            return {
                "success": True,
                "status": "no_devices",
                "devices": {"total": 0, "success": 0, "failed": 0},
                "deviceResults": [],
            }
        case Completed():
            return {
                "success": result.succeeded > 0,
                "status": "completed",
                "devices": {
                    "total": result.total,
                    "success": result.succeeded,
                    "failed": result.failed,
                },
                "deviceResults": [outcome_to_dict(outcome) for outcome in result.outcomes],
            }

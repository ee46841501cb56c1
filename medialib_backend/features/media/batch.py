"""
Batch orchestration with per-item failure isolation.

Items run sequentially; a failing item is recorded in `failed` and never rolls
back an item that already succeeded.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from ...shared import ErrorCode, Result, get_logger, sanitize_error_message, timer

logger = get_logger(__name__)

KeyFn = Callable[[Any], Any]
ValidateFn = Callable[[Any], Optional[str]]
OperationFn = Callable[[Any], Awaitable[Result[Any]]]
# Turns a successful operation result into the extra fields of a `succeeded` entry.
SuccessFn = Callable[[Result[Any]], Dict[str, Any]]


def _item_key(key_of: KeyFn, item: Any, index: int) -> Any:
    try:
        key = key_of(item)
    except (AttributeError, KeyError, TypeError):
        key = None
    return key if key not in (None, "") else f"#{index}"


def _default_success(res: Result[Any]) -> Dict[str, Any]:
    return {"result": res.data}


async def run_batch(
    items: Any,
    *,
    key_of: KeyFn,
    validate: ValidateFn,
    operation: OperationFn,
    label: str = "batch",
    on_success: Optional[SuccessFn] = None,
) -> Result[Dict[str, Any]]:
    """
    Apply `operation` to every item of `items`.

    Args:
        items: Non-empty list of input items.
        key_of: Extracts the identifying key echoed in each outcome entry.
        validate: Returns an error message for an invalid item, else None.
        operation: Async single-item operation returning a Result.
        label: Name used in logs.
        on_success: Builds the success entry fields (default: `{"result": data}`).

    Returns:
        Ok({succeeded, failed, total, success_count, fail_count}) or
        Err(INVALID_INPUT) when `items` is not a non-empty list.
    """
    if not isinstance(items, list) or not items:
        return Result.Err(ErrorCode.INVALID_INPUT, "Items must be a non-empty list")

    build_success = on_success or _default_success
    succeeded: List[Dict[str, Any]] = []
    failed: List[Dict[str, Any]] = []

    with timer(label, logger):
        for index, item in enumerate(items):
            key = _item_key(key_of, item, index)

            error = validate(item)
            if error:
                failed.append({"item_key": key, "error": error, "code": ErrorCode.INVALID_INPUT.value})
                continue

            try:
                res = await operation(item)
            except Exception as exc:
                logger.warning("%s: item %r raised: %s", label, key, exc)
                failed.append({
                    "item_key": key,
                    "error": sanitize_error_message(exc, "Operation failed"),
                    "code": ErrorCode.OPERATION_FAILED.value,
                })
                continue

            if not res.ok:
                failed.append({"item_key": key, "error": res.error or "Operation failed", "code": res.code})
                continue

            entry = {"item_key": key}
            entry.update(build_success(res))
            succeeded.append(entry)

    total = len(items)
    if failed:
        logger.warning("%s: %d/%d items failed", label, len(failed), total)
    else:
        logger.info("%s: %d items processed", label, total)

    return Result.Ok({
        "succeeded": succeeded,
        "failed": failed,
        "total": total,
        "success_count": len(succeeded),
        "fail_count": len(failed),
    })

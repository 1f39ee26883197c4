from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .cache import ImageCache
from .datauri import is_image_part
from .engine import CompressionObserver
from .processor import process_image_part
from .results import CompressionResult
from .settings import DEFAULT_SETTINGS, CompressSettings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageTask:
    """One attachment and the destination it is headed for."""
    part: Any
    destination_id: str = "default"
    model_id: Optional[str] = None


@dataclass(frozen=True)
class BatchSummary:
    total: int
    compressed: int
    skipped: int
    failed: int
    total_original_bytes: int
    total_compressed_bytes: int

    @property
    def saved_bytes(self) -> int:
        return max(0, self.total_original_bytes - self.total_compressed_bytes)

    @property
    def saved_percent(self) -> float:
        if self.total_original_bytes <= 0:
            return 0.0
        return (self.saved_bytes / self.total_original_bytes) * 100.0


def summarize(results: Sequence[CompressionResult]) -> BatchSummary:
    compressed = [r for r in results if r.was_compressed]
    failed = sum(1 for r in results if r.failed)
    return BatchSummary(
        total=len(results),
        compressed=len(compressed),
        skipped=len(results) - len(compressed) - failed,
        failed=failed,
        # Only compressed images count towards savings
        total_original_bytes=sum(r.original_size for r in compressed),
        total_compressed_bytes=sum(r.compressed_size for r in compressed),
    )


def process_batch(
    tasks: Sequence[ImageTask],
    settings: CompressSettings = DEFAULT_SETTINGS,
    cache: Optional[ImageCache] = None,
    observer: Optional[CompressionObserver] = None,
    max_workers: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> tuple[List[CompressionResult], BatchSummary]:
    """
    Process every task concurrently; results come back in task order.

    Each image's own attempts stay sequential inside its worker. Once
    cancel_event is set, tasks that haven't started are returned untouched.
    """
    total = len(tasks)
    done = 0
    done_lock = threading.Lock()

    def run(task: ImageTask) -> CompressionResult:
        nonlocal done
        if cancel_event and cancel_event.is_set():
            return CompressionResult(part=task.part, original_size=0, compressed_size=0, was_compressed=False)

        result = process_image_part(
            task.part,
            task.destination_id,
            task.model_id,
            settings=settings,
            cache=cache,
            observer=observer,
        )

        if progress_callback:
            with done_lock:
                done += 1
                idx = done
            progress_callback(idx, total)
        return result

    results: List[CompressionResult] = []
    if total:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="imgfit") as pool:
            futures: List[Future] = [pool.submit(run, t) for t in tasks]
            results = [f.result() for f in futures]

    summary = summarize(results)
    if summary.compressed:
        logger.info(
            "compression complete: %d compressed, %d skipped, %d failed, saved %d bytes",
            summary.compressed,
            summary.skipped,
            summary.failed,
            summary.saved_bytes,
        )
    if summary.failed:
        logger.warning("%d image(s) failed to compress and were sent as-is", summary.failed)

    return results, summary


def _message_destination(info: Any) -> tuple[str, Optional[str]]:
    # Only user messages say which model they target.
    if not isinstance(info, Mapping) or info.get("role") != "user":
        return "default", None
    model = info.get("model")
    if not isinstance(model, Mapping):
        return "default", None
    return model.get("providerID") or "default", model.get("modelID")


def transform_messages(
    messages: List[Dict[str, Any]],
    settings: CompressSettings = DEFAULT_SETTINGS,
    cache: Optional[ImageCache] = None,
    observer: Optional[CompressionObserver] = None,
    max_workers: Optional[int] = None,
) -> BatchSummary:
    """
    Compress every inline image part of a chat history in place.

    Messages look like {"info": {"role": ..., "model": {"providerID", "modelID"}},
    "parts": [...]}. Parts are replaced by the processed ones.
    """
    slots: List[tuple[List[Any], int]] = []
    tasks: List[ImageTask] = []

    for message in messages:
        parts = message.get("parts")
        if not parts:
            continue

        destination_id, model_id = _message_destination(message.get("info"))
        for i, part in enumerate(parts):
            if is_image_part(part):
                slots.append((parts, i))
                tasks.append(ImageTask(part=part, destination_id=destination_id, model_id=model_id))

    if not tasks:
        logger.debug("no image parts found, skipping")
        return summarize([])

    logger.info(
        "processing %d image(s) for %s",
        len(tasks),
        sorted({t.destination_id for t in tasks}),
    )

    results, summary = process_batch(
        tasks, settings=settings, cache=cache, observer=observer, max_workers=max_workers
    )

    for (parts, i), result in zip(slots, results):
        parts[i] = result.part

    return summary


# Tool outputs don't say which model reads them; use the strictest common ceiling.
TOOL_DESTINATION = "anthropic"


def transform_tool_attachments(
    tool: str,
    attachments: Optional[List[Dict[str, Any]]],
    settings: CompressSettings = DEFAULT_SETTINGS,
    cache: Optional[ImageCache] = None,
    observer: Optional[CompressionObserver] = None,
    max_workers: Optional[int] = None,
) -> BatchSummary:
    """
    Compress inline image attachments of a `read` tool result in place.

    Each compressed attachment dict gets its `mime` and `url` overwritten;
    everything else about it is left alone. Other tools are ignored.
    """
    if tool != "read" or not attachments:
        return summarize([])

    targets = [att for att in attachments if is_image_part(att)]
    if not targets:
        return summarize([])

    tasks = [ImageTask(part=att, destination_id=TOOL_DESTINATION) for att in targets]
    results, summary = process_batch(
        tasks, settings=settings, cache=cache, observer=observer, max_workers=max_workers
    )

    for att, result in zip(targets, results):
        if result.was_compressed:
            att["mime"] = result.part["mime"]
            att["url"] = result.part["url"]

    return summary

"""
Sequential batch driver.

Drives several jobs one after another through the same client, e.g. one
video per scene. Running one job at a time is a policy of this driver; the
client itself imposes no ordering across jobs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Mapping, Optional

from .client import AsyncJobClient
from .errors import AsyncJobError
from .models import PollConfig, SubmitOptions

logger = logging.getLogger(__name__)


@dataclass
class BatchItemResult:
    """Outcome for one batch item."""
    key: Hashable
    artifact: Optional[bytes] = None
    error: Optional[AsyncJobError] = None

    @property
    def ok(self) -> bool:
        return self.artifact is not None


@dataclass
class BatchReport:
    """Outcome of a whole batch, in submission order."""
    results: list[BatchItemResult] = field(default_factory=list)
    skipped: list[Hashable] = field(default_factory=list)
    stopped_on_permission_issue: bool = False

    @property
    def succeeded(self) -> list[BatchItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[BatchItemResult]:
        return [r for r in self.results if not r.ok]


async def run_batch(
    client: AsyncJobClient,
    items: Mapping[Hashable, Any],
    options: Optional[SubmitOptions] = None,
    config: Optional[PollConfig] = None,
    stop_on_permission_issue: bool = True,
    on_item: Optional[Callable[[int, int, Hashable], None]] = None,
    on_result: Optional[Callable[[BatchItemResult], None]] = None,
) -> BatchReport:
    """
    Run one job per item, strictly in order.

    A failed item does not stop the batch, except for permission failures
    (when `stop_on_permission_issue` is set): every later item would fail on
    the same credential, so the rest are reported as skipped.

    Args:
        client: Job client
        items: Ordered mapping of key -> payload
        options: Submit options shared by every item
        config: Poll config shared by every item
        stop_on_permission_issue: Stop at the first permission failure
        on_item: Called as (index, total, key) before each item, index 1-based
        on_result: Called with each item's result as soon as it finishes

    Returns:
        BatchReport with one result per attempted item
    """
    report = BatchReport()
    keys = list(items)
    total = len(keys)

    for index, key in enumerate(keys, start=1):
        if on_item:
            try:
                on_item(index, total, key)
            except Exception as e:
                logger.warning(f"Batch item callback failed: {e}")

        logger.info(f"Batch item {index}/{total}: {key}")

        try:
            artifact = await client.run(items[key], options, config)
            result = BatchItemResult(key=key, artifact=artifact)
        except AsyncJobError as e:
            logger.error(f"Batch item {key} failed: {e}")
            result = BatchItemResult(key=key, error=e)

        report.results.append(result)
        if on_result:
            try:
                on_result(result)
            except Exception as e:
                logger.warning(f"Batch result callback failed: {e}")

        if result.error is not None and result.error.is_permission_issue and stop_on_permission_issue:
            report.stopped_on_permission_issue = True
            report.skipped = keys[index:]
            logger.warning(
                f"Stopping batch on permission failure, {len(report.skipped)} item(s) skipped"
            )
            break

    logger.info(
        f"Batch finished: {len(report.succeeded)} succeeded, "
        f"{len(report.failed)} failed, {len(report.skipped)} skipped"
    )
    return report

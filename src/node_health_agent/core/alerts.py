"""Alert upserts keyed by ``type``.

The collector owns reconciliation: the latest ``solved`` value for a type
opens or closes the alert. Nothing is deduplicated locally.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .models import AlertRecord, TransportResult
from .transport import Transport

logger = logging.getLogger(__name__)


def build_alert_payload(api_key: str, node_id: str | int, record: AlertRecord) -> dict[str, Any]:
    return {
        "api_key": api_key,
        "id_node": node_id,
        "type": record.type,
        "description": record.description,
        "screenshot_url": None,
        "solved": record.solved,
    }


class AlertReconciler:
    def __init__(self, *, transport: Transport, url: str, api_key: str) -> None:
        self.transport = transport
        self.url = url
        self.api_key = api_key

    async def dispatch(
        self, node_id: str | int, records: Sequence[AlertRecord]
    ) -> list[TransportResult]:
        results: list[TransportResult] = []
        for record in records:
            result = await self.transport.post_json(
                self.url, build_alert_payload(self.api_key, node_id, record)
            )
            if not result.ok:
                logger.warning(
                    "Alert %s not accepted (code=%s, error=%s)",
                    record.type,
                    result.code,
                    result.error,
                )
            results.append(result)
        return results

"""
Bulk Request Builder - batches SyncOperations into one _bulk call.

Each operation becomes an (action-header, action-body) pair:

    {"update": {"_index": "content", "_id": "10", "retry_on_conflict": 3}}
    {"script": {"source": "...", "lang": "painless", "params": {...}}}

Order is preserved. Item-level failures are reported per item and never
stop sibling items; only a failure of the request itself raises.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from elasticsearch import ApiError, ConnectionError as ESConnectionError, TransportError

from .config import DEFAULT_RETRY_ON_CONFLICT
from .exceptions import BulkDispatchError, InvalidOperationError
from .models import SyncAction, SyncOperation
from .sync import SCRIPTS

logger = logging.getLogger(__name__)


@dataclass
class BulkPayload:
    """Ordered (header, body) pairs ready for the transport."""
    operations: List[SyncOperation]
    pairs: List[Tuple[Dict[str, Any], Dict[str, Any]]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.pairs)

    def flatten(self) -> List[Dict[str, Any]]:
        lines = []
        for header, body in self.pairs:
            lines.append(header)
            lines.append(body)
        return lines

    def to_ndjson(self) -> str:
        """Newline-delimited body for the _bulk endpoint."""
        if not self.pairs:
            return ""
        return "\n".join(json.dumps(line, separators=(",", ":")) for line in self.flatten()) + "\n"


@dataclass
class BulkItemResult:
    """Outcome of one operation within a bulk request."""
    operation: SyncOperation
    status: int
    result: Optional[str] = None       # updated, noop, ...
    error: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.error is None and 200 <= self.status < 300

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.to_dict(),
            "status": self.status,
            "result": self.result,
            "error": self.error,
            "success": self.success,
        }


@dataclass
class BulkResult:
    """Per-item outcomes of a dispatched batch, in input order."""
    items: List[BulkItemResult] = field(default_factory=list)
    took: int = 0

    @property
    def errors(self) -> bool:
        return any(not item.success for item in self.items)

    @property
    def succeeded(self) -> List[BulkItemResult]:
        return [item for item in self.items if item.success]

    @property
    def failed(self) -> List[BulkItemResult]:
        return [item for item in self.items if not item.success]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total": len(self.items),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "noop": sum(1 for item in self.items if item.result == "noop"),
            "took": self.took,
        }


class BulkRequestBuilder:
    """Serializes SyncOperations as scripted updates and dispatches them."""

    def __init__(
        self,
        index_name: str,
        retry_on_conflict: int = DEFAULT_RETRY_ON_CONFLICT,
        refresh: Optional[str] = None,
    ):
        self.index_name = index_name
        self.retry_on_conflict = retry_on_conflict
        self.refresh = refresh

    def validate(self, operations: Iterable[SyncOperation]) -> List[SyncOperation]:
        """Reject the whole batch if any operation cannot be expressed."""
        checked = []
        for position, op in enumerate(operations):
            if not isinstance(op, SyncOperation):
                raise InvalidOperationError(f"Item {position} is not a SyncOperation: {op!r}")
            if not isinstance(op.action, SyncAction) or op.action not in SCRIPTS:
                raise InvalidOperationError(f"Item {position} has invalid action {op.action!r}")
            if op.action in (SyncAction.UPSERT, SyncAction.REMOVE) and op.entity_id is None:
                raise InvalidOperationError(f"Item {position} ({op.action.value}) has no projection entity_id")
            if not op.field_key:
                raise InvalidOperationError(f"Item {position} has an empty field key")
            checked.append(op)
        return checked

    def header(self, op: SyncOperation) -> Dict[str, Any]:
        return {
            "update": {
                "_index": self.index_name,
                "_id": str(op.owner_entity_id),
                "retry_on_conflict": self.retry_on_conflict,
            }
        }

    def body(self, op: SyncOperation) -> Dict[str, Any]:
        return {
            "script": {
                "source": SCRIPTS[op.action],
                "lang": "painless",
                "params": op.params(),
            }
        }

    def batch(self, operations: Iterable[SyncOperation]) -> BulkPayload:
        checked = self.validate(operations)
        payload = BulkPayload(operations=checked)
        for op in checked:
            payload.pairs.append((self.header(op), self.body(op)))
        return payload

    def dispatch(self, es, operations: Iterable[SyncOperation]) -> BulkResult:
        """
        Send one bulk request and report every item.

        Raises BulkDispatchError when the request itself fails; nothing is
        retried or rolled back.
        """
        payload = self.batch(operations)
        if not payload.pairs:
            return BulkResult()

        kwargs = {}
        if self.refresh:
            kwargs["refresh"] = self.refresh

        try:
            response = es.bulk(operations=payload.flatten(), **kwargs)
        except ApiError as e:
            logger.error(f"Bulk request to {self.index_name} rejected: {e}")
            raise BulkDispatchError(f"Bulk request rejected: {e}", cause=e, status=getattr(e, "status_code", None)) from e
        except (ESConnectionError, TransportError) as e:
            logger.error(f"Bulk request to {self.index_name} failed: {e}")
            raise BulkDispatchError(f"Bulk transport failure: {e}", cause=e) from e

        result = self._collect(payload, response)
        stats = result.get_stats()
        if result.errors:
            for item in result.failed:
                logger.warning(
                    f"Bulk item failed: {item.operation.action.value} {item.operation.field_key} "
                    f"on {item.operation.owner_entity_id} ({item.status}): {item.error}"
                )
        logger.info(
            f"Bulk dispatched {stats['total']} ops to {self.index_name}: "
            f"{stats['succeeded']} ok, {stats['failed']} failed, {stats['noop']} noop"
        )
        return result

    def _collect(self, payload: BulkPayload, response) -> BulkResult:
        raw_items = list(response.get("items", []) or [])
        if len(raw_items) != len(payload.operations):
            raise BulkDispatchError(
                f"Bulk response has {len(raw_items)} items for {len(payload.operations)} operations"
            )

        items = []
        for op, raw in zip(payload.operations, raw_items):
            # Each item is {"update": {...}}
            outcome = next(iter(raw.values()), {}) if raw else {}
            items.append(
                BulkItemResult(
                    operation=op,
                    status=int(outcome.get("status", 0)),
                    result=outcome.get("result"),
                    error=outcome.get("error"),
                )
            )
        return BulkResult(items=items, took=int(response.get("took", 0) or 0))

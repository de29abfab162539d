"""Stage tracing with structured JSON output and trace ID correlation."""

import json
import logging
import time
import uuid
from contextlib import contextmanager

logger = logging.getLogger("tender.trace")


class StageTrace:
    """Counters a stage reports back before its trace line is written."""

    def __init__(self, trace_id: str, stage: str, fields: dict):
        self.trace_id = trace_id
        self.stage = stage
        self.fields = dict(fields)

    def record(self, **fields) -> None:
        self.fields.update(fields)


def new_trace_id() -> str:
    return str(uuid.uuid4())[:8]


@contextmanager
def stage_trace(stage: str, trace_id: str | None = None, **fields):
    """Time a pipeline stage and log one JSON line when it finishes.

    Usage:
        with stage_trace("extract", customer_id="acme") as trace:
            result = extractor.extract(text)
            trace.record(candidates=len(result.candidates))

    The line is written even when the stage raises, with ``status`` set to
    ``error``; the exception still propagates.
    """
    trace = StageTrace(trace_id or new_trace_id(), stage, fields)
    start_time = time.perf_counter()
    status = "ok"
    try:
        yield trace
    except Exception:
        status = "error"
        raise
    finally:
        duration_ms = round((time.perf_counter() - start_time) * 1000, 1)
        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "trace_id": trace.trace_id,
            "stage": stage,
            "status": status,
            "duration_ms": duration_ms,
            **trace.fields,
        }
        logger.info(json.dumps(log_data, default=str))

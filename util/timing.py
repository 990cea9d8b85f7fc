# util/timing.py
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator
import logging


@contextmanager
def timed(logger: logging.Logger, name: str, **kv: Any) -> Iterator[Dict[str, Any]]:
    """
    Usage:
      with timed(logger, "job.convert", job=job_id) as fields:
          ...
          fields["bytes"] = len(out)
    Emits one INFO on exit: "<name>.done ms=<int> key=val ..." or
    "<name>.failed ms=<int> ..." when the block raised.
    """
    fields: Dict[str, Any] = dict(kv)
    t0 = time.perf_counter()
    outcome = "done"
    try:
        yield fields
    except BaseException:
        outcome = "failed"
        raise
    finally:
        dt_ms = int((time.perf_counter() - t0) * 1000)
        suffix = "".join(f" {k}={v}" for k, v in fields.items())
        logger.info("%s.%s ms=%d%s", name, outcome, dt_ms, suffix)

"""Classification batch file loading."""

import logging
from pathlib import Path

from pydantic import TypeAdapter

from autotriage.models import IssueClassification

log = logging.getLogger(__name__)

_BATCH = TypeAdapter(list[IssueClassification])


def load_batch(path: Path) -> list[IssueClassification]:
    """Read the classifier output, preserving file order.

    OSError and pydantic.ValidationError propagate: a run without a readable
    batch has nothing to do.
    """
    batch = _BATCH.validate_json(path.read_bytes())
    log.info("loaded %d classification(s) from %s", len(batch), path)
    return batch

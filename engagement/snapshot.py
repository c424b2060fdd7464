"""
engagement/snapshot.py -- Optional JSON copy of the engagement state.

The document store is the only source of truth. When TALLY_SNAPSHOT_PATH is
set, the tracker rewrites this file after every successful flush so other
tools can read the tally without a database driver. It is never read back.

File layout:
    {"support": 3, "oppose": 1, "voters": ["1.2.3.4", ...],
     "visitors": [{"ip": "1.2.3.4", "timestamp": "..."}], "visitCount": 17}
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path

from engagement.models import Tally


def write_snapshot(path: str | Path, tally: Tally, live: dict[str, datetime]) -> None:
    """Atomically replace the snapshot file at `path`.

    Writes to a sibling temp file first, then renames over the target, so a
    reader never sees a half-written document.
    """
    target = Path(path)
    data = {
        "support": tally.support,
        "oppose": tally.oppose,
        "voters": sorted(tally.voters),
        "visitors": [{"ip": ip, "timestamp": ts.isoformat()} for ip, ts in live.items()],
        "visitCount": tally.visit_count,
    }
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp, target)

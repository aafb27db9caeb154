from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from sensor_sim.domain.records import Record


# SourceAdapter port: how one configured data source feeds records into the merge engine.
@runtime_checkable
class SourceAdapter(Protocol):
    def batches(self) -> Iterator[list[Record]]:
        """Yield record batches with non-decreasing timestamps.

        Construction must not touch the filesystem; iteration is single use.
        Exhaustion signals end of source, a raised exception signals failure.
        """
        # Port contract has no implementation; calling it directly is a wiring error.
        raise NotImplementedError("SourceAdapter is a port; use a concrete driver.")

"""Merge hits that are fragments of one logical code unit."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .types import SearchHit

__all__ = ["reconstruct_split_hits"]


GroupKey = Tuple[str, str, Optional[str], Optional[str]]


def _group_key(hit: SearchHit, position: int) -> Union[GroupKey, int]:
    meta = hit.metadata
    # Module-level chunks carry no unit identity; they never merge.
    if not (meta.class_name or meta.method_name):
        return position
    return (hit.collection, meta.relative_path, meta.class_name, meta.method_name)


def _contiguous_runs(group: List[SearchHit]) -> List[List[SearchHit]]:
    """Split a group into runs whose line ranges touch or overlap."""
    ordered = sorted(group, key=lambda hit: hit.metadata.line_start)
    runs: List[List[SearchHit]] = [[ordered[0]]]
    end = ordered[0].metadata.line_end
    for hit in ordered[1:]:
        if hit.metadata.line_start <= end + 1:
            runs[-1].append(hit)
            end = max(end, hit.metadata.line_end)
        else:
            runs.append([hit])
            end = hit.metadata.line_end
    return runs


def _merge(run: List[SearchHit], first: SearchHit) -> SearchHit:
    metadata = replace(
        run[0].metadata,
        line_start=min(hit.metadata.line_start for hit in run),
        line_end=max(hit.metadata.line_end for hit in run),
    )
    return SearchHit(
        chunk_id="+".join(hit.chunk_id for hit in run),
        text="\n".join(hit.text for hit in run),
        metadata=metadata,
        collection=first.collection,
        score=first.score,
        distance=first.distance,
    )


def reconstruct_split_hits(hits: Sequence[SearchHit]) -> List[SearchHit]:
    """Merge fragments of the same class or method into single hits.

    Hits are grouped by ``(collection, path, className, methodName)``; hits
    with neither name are left alone. Within a group only fragments whose
    line ranges touch or overlap are merged, so a merged hit never claims
    lines that no fragment covered. Output order follows each group's first
    appearance and running this again returns the result unchanged.
    """
    groups: Dict[Union[GroupKey, int], List[SearchHit]] = {}
    for position, hit in enumerate(hits):
        groups.setdefault(_group_key(hit, position), []).append(hit)

    merged: List[SearchHit] = []
    for group in groups.values():
        if len(group) == 1:
            merged.append(group[0])
            continue
        for run in _contiguous_runs(group):
            if len(run) == 1:
                merged.append(run[0])
                continue
            first = next(hit for hit in group if hit in run)
            merged.append(_merge(run, first))
    return merged

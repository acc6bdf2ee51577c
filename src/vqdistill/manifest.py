"""Cut manifest helpers.

Manifests are lhotse cut sets serialized as gzip-compressed JSON lines, one cut
per line. Codebook indexes are attached to a cut under
``custom.codebook_indexes`` as an lhotse (Temporal)Array reference into an
HDF5 file.
"""
import gzip
import json
import logging
import random
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import ManifestError, MissingPreconditionError

logger = logging.getLogger(__name__)

TRAIN_SUBSETS = ("train-clean-100", "train-clean-360", "train-other-500")
COMBINED_MANIFEST = "librispeech_cuts_train-all-shuf.jsonl.gz"


def subset_manifest_name(subset: str) -> str:
    return f"librispeech_cuts_{subset}.jsonl.gz"


def _iter_lines(path: Path) -> Iterator[Tuple[str, Dict]]:
    with gzip.open(path, "rt", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                cut = json.loads(line)
            except json.JSONDecodeError as err:
                raise ManifestError(f"{path}:{lineno}: invalid JSON ({err.msg})") from err
            yield line, cut


def read_manifest(path: Path) -> Iterator[Dict]:
    for _, cut in _iter_lines(path):
        yield cut


def merge_manifests(
    manifest_dir: Path,
    subsets: Sequence[str] = TRAIN_SUBSETS,
    output_name: str = COMBINED_MANIFEST,
    seed: Optional[int] = None,
) -> Path:
    """Concatenate the subset manifests into one shuffled manifest.

    A stale combined manifest is removed first. Cut ids must be unique across subsets.
    """
    manifest_dir = Path(manifest_dir)
    output = manifest_dir / output_name
    if output.exists():
        logger.info("Removing stale %s", output)
        output.unlink()

    sources = [manifest_dir / subset_manifest_name(subset) for subset in subsets]
    missing = [str(p) for p in sources if not p.is_file()]
    if missing:
        raise MissingPreconditionError(f"Cannot merge, missing manifests: {', '.join(missing)}")

    # raw lines are kept; only the id of each cut is decoded
    lines: List[str] = []
    seen = set()
    for source in sources:
        before = len(lines)
        for line, cut in _iter_lines(source):
            cut_id = cut.get("id")
            if cut_id is None:
                raise ManifestError(f"{source}: cut without an id")
            if cut_id in seen:
                raise ManifestError(f"{source}: duplicate cut id {cut_id}")
            seen.add(cut_id)
            lines.append(line)
        logger.info("%s: %d cuts", source.name, len(lines) - before)

    random.Random(seed).shuffle(lines)
    with gzip.open(output, "wt", encoding="utf-8") as handle:
        for line in lines:
            handle.write(line + "\n")
    logger.info("Wrote %d cuts to %s", len(lines), output)
    return output


def codebook_reference(cut: Dict) -> Optional[Dict]:
    ref = (cut.get("custom") or {}).get("codebook_indexes")
    if not ref:
        return None
    # TemporalArray wraps the storage reference in "array"
    return ref.get("array", ref)


def check_codebook_coverage(manifest: Path, base_dir: Optional[Path] = None) -> int:
    """Every cut in ``manifest`` must reference an existing codebook-index file.

    Relative storage paths are resolved against ``base_dir`` (the recipe's
    working directory). Returns the number of cuts checked.
    """
    manifest = Path(manifest)
    if not manifest.is_file():
        raise MissingPreconditionError(f"Training manifest {manifest} does not exist; run stage 2 first")

    base = Path(base_dir) if base_dir is not None else Path.cwd()
    existing = set()
    count = 0
    for cut in read_manifest(manifest):
        count += 1
        ref = codebook_reference(cut)
        if ref is None or not ref.get("storage_path"):
            raise MissingPreconditionError(f"Cut {cut.get('id')} in {manifest.name} has no codebook indexes")
        storage = Path(ref["storage_path"])
        if not storage.is_absolute():
            storage = base / storage
        if storage not in existing:
            if not storage.exists():
                raise MissingPreconditionError(f"Cut {cut.get('id')} references missing codebook file {storage}")
            existing.add(storage)
    logger.info("%s: all %d cuts have codebook indexes", manifest.name, count)
    return count

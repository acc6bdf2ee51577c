"""Teacher model download (stage 0)."""
import logging
from pathlib import Path
from typing import Callable, Optional

import httpx
from tqdm import tqdm

from .commands import missing_modules
from .config import PipelineConfig
from .errors import MissingDependencyError

logger = logging.getLogger(__name__)

HUBERT_BASE_URL = "https://dl.fbaipublicfiles.com/hubert"
DICT_URL = "https://dl.fbaipublicfiles.com/fairseq/wav2vec/dict.ltr.txt"

# fairseq loads the HuBERT checkpoint, multi_quantization trains the quantizer
REQUIRED_MODULES = ("fairseq", "multi_quantization")

_INSTALL_HINTS = {
    "fairseq": "pip install fairseq (see https://github.com/pytorch/fairseq)",
    "multi_quantization": "pip install multi_quantization",
}


def check_dependencies(modules=REQUIRED_MODULES, finder: Optional[Callable] = None):
    missing = missing_modules(modules, finder) if finder else missing_modules(modules)
    if missing:
        hints = "; ".join(_INSTALL_HINTS.get(name, f"pip install {name}") for name in missing)
        raise MissingDependencyError(f"Please install {', '.join(missing)} before running following stages ({hints})")


def download_file(url: str, dest_dir: Path, client: Optional[httpx.Client] = None, chunk_size: int = 1 << 20) -> Path:
    """Stream ``url`` into ``dest_dir``, continuing a partial ``.part`` file if present."""
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = dest_dir / url.rsplit("/", 1)[-1]
    partial = target.with_name(target.name + ".part")

    own_client = client is None
    if own_client:
        client = httpx.Client(follow_redirects=True, timeout=httpx.Timeout(60.0, read=None))

    offset = partial.stat().st_size if partial.exists() else 0
    headers = {"Range": f"bytes={offset}-"} if offset else {}
    try:
        with client.stream("GET", url, headers=headers) as response:
            if offset and response.status_code == 416:
                # server has nothing past our offset, the part file is complete
                logger.info("%s already fully downloaded", target.name)
            else:
                response.raise_for_status()
                if offset and response.status_code != 206:
                    logger.warning("Server ignored range request for %s, restarting download", url)
                    offset = 0
                total = response.headers.get("Content-Length")
                total = int(total) + offset if total is not None else None
                mode = "ab" if offset else "wb"
                with open(partial, mode) as handle, tqdm(
                    total=total, initial=offset, unit="B", unit_scale=True, desc=target.name
                ) as bar:
                    for chunk in response.iter_bytes(chunk_size):
                        handle.write(chunk)
                        bar.update(len(chunk))
    finally:
        if own_client:
            client.close()

    partial.replace(target)
    logger.info("Saved %s", target)
    return target


def fetch_teacher_model(cfg: PipelineConfig, client: Optional[httpx.Client] = None, finder: Optional[Callable] = None) -> Path:
    """Make sure the HuBERT checkpoint and its letter dictionary are in ``cfg.model_dir``.

    Returns the checkpoint path. A no-op when the checkpoint already exists.
    """
    check_dependencies(finder=finder)

    checkpoint = cfg.teacher_checkpoint
    cfg.model_dir.mkdir(parents=True, exist_ok=True)
    if checkpoint.is_file():
        logger.info("HuBERT model already exists: %s", checkpoint)
        return checkpoint

    logger.info("Download HuBERT model %s", cfg.teacher_model_id.value)
    if cfg.dry_run:
        logger.info("[dry-run] would download into %s", cfg.model_dir)
        return checkpoint
    download_file(f"{HUBERT_BASE_URL}/{cfg.teacher_model_id.value}.pt", cfg.model_dir, client=client)
    download_file(DICT_URL, cfg.model_dir, client=client)
    return checkpoint

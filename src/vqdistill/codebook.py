"""Codebook index extraction (stage 2).

With num_codebooks == 8 every teacher frame becomes eight 8-bit integers.
The 300h clean-100 + speed perturbation training set takes about 450M on disk.
"""
import logging
import shutil
from importlib import metadata
from pathlib import Path
from typing import Optional

from packaging import version

from .commands import CommandRunner
from .config import CodebookSource, PipelineConfig, TeacherModel
from .errors import UnsupportedConfigurationError
from .manifest import merge_manifests

logger = logging.getLogger(__name__)

PUBLISHED_CODEBOOK_REPO = (
    "https://huggingface.co/marcoyang/pruned_transducer_stateless6_hubert_xtralarge_ll60k_finetune_ls960"
)
PUBLISHED_TEACHER = TeacherModel.HUBERT_XL_FINETUNED
PUBLISHED_LAYER = 36
PUBLISHED_NUM_CODEBOOKS = 8
PUBLISHED_NUM_SPLITS = 4
# the published cut ids were produced with this lhotse release
MIN_LHOTSE_VERSION = "1.11.0"


def check_lhotse_version(minimum: str = MIN_LHOTSE_VERSION) -> bool:
    try:
        installed = metadata.version("lhotse")
    except metadata.PackageNotFoundError:
        logger.warning("lhotse is not installed; the recipe scripts need lhotse >= %s", minimum)
        return False
    if version.parse(installed) < version.parse(minimum):
        logger.warning("Expecting lhotse >= %s, found %s. This may lead to potential ID mismatch.", minimum, installed)
        return False
    return True


def _validate_download(cfg: PipelineConfig):
    if cfg.teacher_model_id is not PUBLISHED_TEACHER:
        raise UnsupportedConfigurationError(
            f"Codebook indexes are only published for teacher model {PUBLISHED_TEACHER.value}, "
            f"not {cfg.teacher_model_id.value}"
        )
    if (cfg.embedding_layer, cfg.num_codebooks) != (PUBLISHED_LAYER, PUBLISHED_NUM_CODEBOOKS):
        raise UnsupportedConfigurationError(
            f"Published codebook indexes use embedding layer {PUBLISHED_LAYER} and {PUBLISHED_NUM_CODEBOOKS} codebooks, "
            f"got layer {cfg.embedding_layer} and {cfg.num_codebooks} codebooks"
        )
    if cfg.download_staging_dir.exists():
        raise UnsupportedConfigurationError(f"{cfg.download_staging_dir} exists, you should remove it first.")


def download_codebook_indexes(cfg: PipelineConfig, runner: CommandRunner) -> Path:
    """Clone the published indexes and lay them out like a locally computed run.

    Returns the directory holding the ``*.h5`` files.
    """
    _validate_download(cfg)
    staging = cfg.download_staging_dir
    splits_dir = cfg.codebook_dir / f"splits{PUBLISHED_NUM_SPLITS}"

    check_lhotse_version()
    logger.info("Downloading extracted codebook indexes to %s", staging)
    # the repository stores the h5 files with git-lfs
    runner.run(["git", "lfs", "install"])
    runner.run(["git", "clone", PUBLISHED_CODEBOOK_REPO, str(staging)])
    if runner.dry_run:
        return splits_dir

    cfg.manifest_dir.mkdir(parents=True, exist_ok=True)
    splits_dir.mkdir(parents=True, exist_ok=True)
    for path in sorted(staging.glob("*.jsonl.gz")):
        shutil.move(str(path), str(cfg.manifest_dir / path.name))
    for path in sorted(staging.glob("*.h5")):
        shutil.move(str(path), str(splits_dir / path.name))

    logger.info("Remove %s", staging)
    shutil.rmtree(staging)
    return splits_dir


def run_extraction_script(cfg: PipelineConfig, runner: CommandRunner):
    """Quantizer training and encoding live in the recipe's extract_codebook_index.py.

    In compute mode it trains the quantizer on ``num_utts`` utterances of teacher
    embeddings and then encodes every utterance. In download mode it attaches the
    downloaded indexes to the cut manifests.
    """
    runner.run_script(
        Path(cfg.recipe_dir) / "extract_codebook_index.py",
        {
            "full_libri": cfg.full_libri,
            "exp_dir": cfg.exp_dir,
            "embedding_layer": cfg.embedding_layer,
            "num_utts": cfg.num_utts,
            "num_codebooks": cfg.num_codebooks,
            "max_duration": cfg.extract_max_duration,
            "teacher_model_id": cfg.teacher_model_id,
            "use_extracted_codebook": cfg.use_extracted_codebook,
        },
    )


def extract_codebook_indexes(cfg: PipelineConfig, runner: Optional[CommandRunner] = None) -> Path:
    """Produce codebook indexes and their manifests; returns the manifest dir."""
    runner = runner or CommandRunner(dry_run=cfg.dry_run)
    if cfg.codebook_source is CodebookSource.DOWNLOAD:
        download_codebook_indexes(cfg, runner)
    elif cfg.codebook_source is CodebookSource.COMPUTE:
        logger.info("Computing codebook indexes from teacher layer %d with %d codebooks", cfg.embedding_layer, cfg.num_codebooks)
    else:
        raise UnsupportedConfigurationError(f"Unhandled codebook source {cfg.codebook_source}")

    cfg.codebook_dir.parent.mkdir(parents=True, exist_ok=True)
    run_extraction_script(cfg, runner)

    if cfg.full_libri and not runner.dry_run:
        merge_manifests(cfg.manifest_dir, seed=cfg.shuffle_seed)
    return cfg.manifest_dir

"""Invocation of the recipe's verify, train and decode scripts (stages 1, 3, 4)."""
import logging
import re
from pathlib import Path
from typing import Dict, Mapping, Optional

from .commands import CommandRunner
from .config import PipelineConfig, world_size_from_env
from .manifest import COMBINED_MANIFEST, check_codebook_coverage, subset_manifest_name

logger = logging.getLogger(__name__)

# ctc_greedy_search WERs of a correctly loaded hubert_xtralarge_ll60k_finetune_ls960
EXPECTED_TEACHER_WER = {"test-clean": 2.04, "test-other": 3.71}

_WER_RE = re.compile(r"%WER\s*=?\s*([0-9]+(?:\.[0-9]+)?)")


def verify_teacher(cfg: PipelineConfig, runner: Optional[CommandRunner] = None):
    """Decode test sets with the teacher; WERs far from the reference mean it was loaded wrongly."""
    runner = runner or CommandRunner(dry_run=cfg.dry_run)
    for test_set, wer in EXPECTED_TEACHER_WER.items():
        logger.info("Expected %s ctc_greedy_search WER: %.2f%%", test_set, wer)
    runner.run_script(Path(cfg.recipe_dir) / "hubert_decode.py", {"exp_dir": cfg.exp_dir})


def training_manifests(cfg: PipelineConfig):
    if cfg.full_libri:
        return [cfg.manifest_dir / COMBINED_MANIFEST]
    return [cfg.manifest_dir / subset_manifest_name("train-clean-100")]


def train_student(
    cfg: PipelineConfig,
    runner: Optional[CommandRunner] = None,
    env: Optional[Mapping[str, str]] = None,
    base_dir: Optional[Path] = None,
) -> int:
    """Launch distillation training; returns the world size used."""
    runner = runner or CommandRunner(dry_run=cfg.dry_run)
    world_size = world_size_from_env(env)
    if not runner.dry_run:
        for manifest in training_manifests(cfg):
            check_codebook_coverage(manifest, base_dir=base_dir)

    logger.info("Training student on %d GPU(s) for %d epochs", world_size, cfg.num_epochs)
    runner.run_script(
        Path(cfg.recipe_dir) / "train.py",
        {
            "manifest_dir": cfg.manifest_dir,
            "master_port": cfg.master_port,
            "full_libri": cfg.full_libri,
            "spec_aug_time_warp_factor": cfg.spec_aug_time_warp_factor,
            "max_duration": cfg.train_max_duration,
            "world_size": world_size,
            "num_epochs": cfg.num_epochs,
            "exp_dir": cfg.exp_dir,
            "enable_distillation": True,
        },
    )
    return world_size


def parse_wer(path: Path) -> Optional[float]:
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            match = _WER_RE.search(line)
            if match:
                return float(match.group(1))
    return None


def collect_wer(results_dir: Path, epoch: Optional[int] = None, avg: Optional[int] = None) -> Dict[str, float]:
    """Read ``%WER = x`` from the ``errs-*.txt`` files under ``results_dir``.

    With ``epoch`` and ``avg`` only files of that checkpoint selection are read;
    decode.py names them ``...-epoch-{epoch}-avg-{avg}-...``.
    """
    selected = None
    if epoch is not None and avg is not None:
        selected = re.compile(rf"-epoch-{epoch}-avg-{avg}(?:-|\.txt$)")
    results: Dict[str, float] = {}
    for path in sorted(Path(results_dir).rglob("errs-*.txt")):
        if selected is not None and not selected.search(path.name):
            continue
        wer = parse_wer(path)
        if wer is None:
            logger.warning("No WER found in %s", path)
            continue
        results[path.stem] = wer
    return results


def decode_student(cfg: PipelineConfig, runner: Optional[CommandRunner] = None) -> Dict[str, float]:
    runner = runner or CommandRunner(dry_run=cfg.dry_run)
    runner.run_script(
        Path(cfg.recipe_dir) / "decode.py",
        {
            "decoding_method": cfg.decoding_method,
            "epoch": cfg.decode_epoch,
            "avg": cfg.decode_avg,
            "max_duration": cfg.decode_max_duration,
            "exp_dir": cfg.exp_dir,
            "enable_distillation": True,
        },
    )
    if runner.dry_run:
        return {}

    results = collect_wer(Path(cfg.exp_dir) / cfg.decoding_method, epoch=cfg.decode_epoch, avg=cfg.decode_avg)
    if not results:
        logger.warning("No decoding results found under %s", Path(cfg.exp_dir) / cfg.decoding_method)
    for name, wer in results.items():
        logger.info("%s: %%WER = %.2f", name, wer)
    return results

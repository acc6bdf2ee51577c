"""Stage gating and the sequential pipeline runner."""
import logging
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence

import httpx

from .codebook import extract_codebook_indexes
from .commands import CommandRunner
from .config import PipelineConfig
from .errors import MissingPreconditionError
from .fetch import fetch_teacher_model
from .recipe import decode_student, train_student, verify_teacher

logger = logging.getLogger(__name__)


def should_run(index: int, stage: int, stop_stage: int) -> bool:
    return stage <= index <= stop_stage


def _always(cfg: PipelineConfig) -> bool:
    return True


def _computing(cfg: PipelineConfig) -> bool:
    # the teacher is only needed when indexes are computed locally
    return not cfg.use_extracted_codebook


@dataclass(frozen=True)
class Stage:
    index: int
    name: str
    description: str
    run: Callable[[PipelineConfig, CommandRunner], object]
    enabled: Callable[[PipelineConfig], bool] = _always
    needs_features: bool = True


def default_stages(client: Optional[httpx.Client] = None, env: Optional[Mapping[str, str]] = None) -> List[Stage]:
    return [
        Stage(0, "fetch", "Download HuBERT model", lambda cfg, runner: fetch_teacher_model(cfg, client=client),
              enabled=_computing, needs_features=False),
        Stage(1, "verify", "Verify that the downloaded HuBERT model is correct", verify_teacher, enabled=_computing),
        Stage(2, "codebook", "Extract codebook indexes", extract_codebook_indexes),
        Stage(3, "train", "Train student model with codebook distillation",
              lambda cfg, runner: train_student(cfg, runner, env=env)),
        Stage(4, "decode", "Decode with the student model", decode_student),
    ]


def check_features(cfg: PipelineConfig):
    if not cfg.fbank_dir.is_dir():
        raise MissingPreconditionError(f"This pipeline assumes {cfg.fbank_dir} is already generated by prepare.sh")


def run_pipeline(
    cfg: PipelineConfig,
    stages: Optional[Sequence[Stage]] = None,
    runner: Optional[CommandRunner] = None,
) -> List[str]:
    """Run the selected stages in index order. Returns the names of the stages that ran.

    Any exception aborts the remaining stages.
    """
    stages = sorted(stages if stages is not None else default_stages(), key=lambda s: s.index)
    runner = runner or CommandRunner(dry_run=cfg.dry_run)

    executed: List[str] = []
    features_checked = False
    for stage in stages:
        if not should_run(stage.index, cfg.stage, cfg.stop_stage):
            logger.debug("Skipping stage %d (%s): outside [%d, %d]", stage.index, stage.name, cfg.stage, cfg.stop_stage)
            continue
        if not stage.enabled(cfg):
            logger.info("Skipping stage %d (%s) with codebook source %s", stage.index, stage.name, cfg.codebook_source.value)
            continue
        if stage.needs_features and not features_checked:
            check_features(cfg)
            features_checked = True

        logger.info("Stage %d: %s", stage.index, stage.description)
        stage.run(cfg, runner)
        executed.append(stage.name)

    logger.info("Finished stages: %s", ", ".join(executed) if executed else "none")
    return executed

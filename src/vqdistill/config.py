import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional

from .errors import MissingPreconditionError, UnsupportedConfigurationError

logger = logging.getLogger(__name__)


class TeacherModel(str, Enum):
    # fine-tuned on LibriSpeech 960h, the one the published indexes come from
    HUBERT_XL_FINETUNED = "hubert_xtralarge_ll60k_finetune_ls960"
    HUBERT_XL = "hubert_xtralarge_ll60k"


class CodebookSource(str, Enum):
    DOWNLOAD = "download"
    COMPUTE = "compute"


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if raw in {"1", "true", "yes"}:
        return True
    if raw in {"0", "false", "no"}:
        return False
    raise ValueError(f"Expected a boolean, got {value!r}")


def world_size_from_env(env: Optional[Mapping[str, str]] = None) -> int:
    """Number of devices listed in CUDA_VISIBLE_DEVICES.

    Falls back to ``torch.cuda.device_count()`` when the variable is unset.
    """
    env_map = os.environ if env is None else env
    visible = env_map.get("CUDA_VISIBLE_DEVICES")
    if visible is None:
        import torch

        count = torch.cuda.device_count()
        logger.warning("CUDA_VISIBLE_DEVICES is not set; using torch device count %s", count)
    else:
        count = len([item for item in visible.split(",") if item.strip()])

    if count < 1:
        raise MissingPreconditionError("At least one GPU is required; set CUDA_VISIBLE_DEVICES, e.g. \"0\" or \"0,1,2,3\"")
    return count


def _section(cfg: Mapping, name: str, path) -> Mapping:
    # an empty section ("pipeline:" with nothing below) loads as None
    section = cfg.get(name) or {}
    if not isinstance(section, dict):
        raise UnsupportedConfigurationError(f"{path}: section '{name}' must be a mapping")
    return section


@dataclass(frozen=True)
class PipelineConfig:
    stage: int = 0
    stop_stage: int = 4
    exp_dir: str = "./pruned_transducer_stateless6/exp"
    recipe_dir: str = "./pruned_transducer_stateless6"
    data_dir: str = "./data"
    full_libri: bool = True
    codebook_source: CodebookSource = CodebookSource.DOWNLOAD
    teacher_model_id: TeacherModel = TeacherModel.HUBERT_XL_FINETUNED

    # quantizer / extraction
    embedding_layer: int = 36
    num_codebooks: int = 8
    num_utts: int = 1000
    extract_max_duration: int = 100

    # student training
    train_max_duration: int = 300
    num_epochs: int = 20
    master_port: int = 12359
    spec_aug_time_warp_factor: int = -1

    # decoding
    decoding_method: str = "modified_beam_search"
    decode_epoch: int = 20
    decode_avg: int = 10
    decode_max_duration: int = 200

    shuffle_seed: Optional[int] = None
    dry_run: bool = False

    def __post_init__(self):
        # accept plain strings from YAML and argparse
        try:
            object.__setattr__(self, "codebook_source", CodebookSource(self.codebook_source))
        except ValueError:
            raise UnsupportedConfigurationError(f"Codebook source must be 'download' or 'compute', got {self.codebook_source!r}")
        try:
            object.__setattr__(self, "teacher_model_id", TeacherModel(self.teacher_model_id))
        except ValueError:
            known = ", ".join(m.value for m in TeacherModel)
            raise UnsupportedConfigurationError(f"Unknown teacher model {self.teacher_model_id!r}; expected one of: {known}")
        for name in ("full_libri", "dry_run"):
            try:
                object.__setattr__(self, name, parse_bool(getattr(self, name)))
            except ValueError as err:
                raise UnsupportedConfigurationError(f"{name}: {err}")
        if self.stage < 0 or self.stop_stage < self.stage:
            raise UnsupportedConfigurationError(f"Invalid stage range [{self.stage}, {self.stop_stage}]")

    @property
    def use_extracted_codebook(self) -> bool:
        return self.codebook_source is CodebookSource.DOWNLOAD

    @property
    def model_dir(self) -> Path:
        return Path(self.exp_dir) / "hubert_models"

    @property
    def teacher_checkpoint(self) -> Path:
        return self.model_dir / f"{self.teacher_model_id.value}.pt"

    @property
    def fbank_dir(self) -> Path:
        return Path(self.data_dir) / "fbank"

    @property
    def codebook_dir(self) -> Path:
        return Path(self.exp_dir) / "vq" / f"{self.teacher_model_id.value}_layer{self.embedding_layer}_cb{self.num_codebooks}"

    @property
    def manifest_dir(self) -> Path:
        return Path(self.data_dir) / f"vq_fbank_layer{self.embedding_layer}_cb{self.num_codebooks}"

    @property
    def download_staging_dir(self) -> Path:
        return Path(self.exp_dir) / "download_codebook"

    @classmethod
    def from_yaml(cls, path: Optional[str], env: Optional[Mapping[str, str]] = None, **overrides) -> "PipelineConfig":
        """Build a config from a YAML file.

        Precedence: explicit ``overrides`` > VQDISTILL_* environment > file > defaults.
        Without a path only the environment and overrides apply.
        """
        env_map = os.environ if env is None else env
        cfg = {}
        if path:
            import yaml

            with open(path, "r", encoding="utf-8") as handle:
                cfg = yaml.safe_load(handle) or {}

        if not isinstance(cfg, dict):
            raise UnsupportedConfigurationError(f"{path}: expected a mapping at the top level")
        pipeline, teacher, codebook, train, decode = (
            _section(cfg, name, path) for name in ("pipeline", "teacher", "codebook", "train", "decode")
        )

        values: Dict[str, object] = {
            "stage": pipeline.get("stage"),
            "stop_stage": pipeline.get("stop_stage"),
            "exp_dir": pipeline.get("exp_dir"),
            "recipe_dir": pipeline.get("recipe_dir"),
            "data_dir": pipeline.get("data_dir"),
            "full_libri": pipeline.get("full_libri"),
            "teacher_model_id": teacher.get("model_id"),
            "embedding_layer": teacher.get("embedding_layer"),
            "codebook_source": codebook.get("source"),
            "num_codebooks": codebook.get("num_codebooks"),
            "num_utts": codebook.get("num_utts"),
            "extract_max_duration": codebook.get("max_duration"),
            "shuffle_seed": codebook.get("shuffle_seed"),
            "train_max_duration": train.get("max_duration"),
            "num_epochs": train.get("num_epochs"),
            "master_port": train.get("master_port"),
            "spec_aug_time_warp_factor": train.get("spec_aug_time_warp_factor"),
            "decoding_method": decode.get("method"),
            "decode_epoch": decode.get("epoch"),
            "decode_avg": decode.get("avg"),
            "decode_max_duration": decode.get("max_duration"),
        }
        for key, env_name in (
            ("exp_dir", "VQDISTILL_EXP_DIR"),
            ("data_dir", "VQDISTILL_DATA_DIR"),
            ("recipe_dir", "VQDISTILL_RECIPE_DIR"),
        ):
            if env_map.get(env_name):
                values[key] = env_map[env_name]
        values.update(overrides)
        return cls.from_dict(values)

    @classmethod
    def from_dict(cls, values: Mapping[str, object]) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise UnsupportedConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        kwargs = {k: v for k, v in values.items() if v is not None}
        return cls(**kwargs)

"""Command line entry point.

To use the published codebook indexes:

    vqdistill --stage 2 --stop-stage 4 --use-extracted-codebook true

To start from scratch (download HuBERT, train the quantizer, extract indexes):

    vqdistill --stage 0 --stop-stage 4 --use-extracted-codebook false

CUDA_VISIBLE_DEVICES must list the GPUs to use, even if there is only one.
"""
import argparse
import logging
import subprocess
import sys
from typing import Dict, List, Optional

from .config import CodebookSource, PipelineConfig, TeacherModel, parse_bool
from .errors import PipelineError
from .stages import run_pipeline

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s (%(filename)s:%(lineno)d:%(funcName)s) %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vqdistill",
        description="HuBERT codebook-index distillation pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=str, default=None, help="YAML file with pipeline defaults")
    parser.add_argument("--stage", type=int, default=None, help="First stage to run (default: 0)")
    parser.add_argument("--stop-stage", type=int, default=None, help="Last stage to run (default: 4)")
    parser.add_argument("--exp-dir", type=str, default=None)
    parser.add_argument("--recipe-dir", type=str, default=None, help="Directory holding train.py, decode.py, ...")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory holding fbank/ (default: ./data)")
    parser.add_argument("--full-libri", type=parse_bool, default=None,
                        help="True: full LibriSpeech; False: train-clean-100 only")
    parser.add_argument("--use-extracted-codebook", type=parse_bool, default=None,
                        help="True: download published codebook indexes and skip stages 0 and 1")
    parser.add_argument("--teacher-model-id", type=str, default=None, choices=[m.value for m in TeacherModel])
    parser.add_argument("--embedding-layer", type=int, default=None)
    parser.add_argument("--num-codebooks", type=int, default=None)
    parser.add_argument("--num-utts", type=int, default=None, help="Utterances used to train the quantizer")
    parser.add_argument("--extract-max-duration", type=int, default=None, help="Max batch duration (s) for index extraction")
    parser.add_argument("--num-epochs", type=int, default=None)
    parser.add_argument("--train-max-duration", type=int, default=None)
    parser.add_argument("--master-port", type=int, default=None)
    parser.add_argument("--spec-aug-time-warp-factor", type=int, default=None)
    parser.add_argument("--decoding-method", type=str, default=None)
    parser.add_argument("--epoch", dest="decode_epoch", type=int, default=None, help="Checkpoint epoch to decode")
    parser.add_argument("--avg", dest="decode_avg", type=int, default=None, help="Number of checkpoints to average")
    parser.add_argument("--decode-max-duration", type=int, default=None)
    parser.add_argument("--shuffle-seed", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true", help="Log external commands instead of running them")
    parser.add_argument("--log-level", type=str.upper, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    overrides: Dict[str, object] = {}
    for key in (
        "stage", "stop_stage", "exp_dir", "recipe_dir", "data_dir", "full_libri", "teacher_model_id",
        "embedding_layer", "num_codebooks", "num_utts", "extract_max_duration", "num_epochs", "train_max_duration",
        "master_port", "spec_aug_time_warp_factor",
        "decoding_method", "decode_epoch", "decode_avg", "decode_max_duration", "shuffle_seed",
    ):
        value = getattr(args, key)
        if value is not None:
            overrides[key] = value
    if args.use_extracted_codebook is not None:
        overrides["codebook_source"] = CodebookSource.DOWNLOAD if args.use_extracted_codebook else CodebookSource.COMPUTE
    if args.dry_run:
        overrides["dry_run"] = True
    return PipelineConfig.from_yaml(args.config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    try:
        cfg = config_from_args(args)
        run_pipeline(cfg)
    except PipelineError as err:
        logger.error("%s", err)
        return 1
    except subprocess.CalledProcessError as err:
        logger.error("Command failed with exit code %s: %s", err.returncode, err.cmd)
        return err.returncode or 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

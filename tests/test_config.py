"""
Tests for pipeline configuration
"""
import importlib.util

import pytest

from vqdistill.config import CodebookSource, PipelineConfig, TeacherModel, parse_bool, world_size_from_env
from vqdistill.errors import MissingPreconditionError, UnsupportedConfigurationError


def test_defaults_match_recipe():
    cfg = PipelineConfig()

    assert (cfg.stage, cfg.stop_stage) == (0, 4)
    assert cfg.full_libri is True
    assert cfg.codebook_source is CodebookSource.DOWNLOAD
    assert cfg.use_extracted_codebook
    assert cfg.teacher_model_id is TeacherModel.HUBERT_XL_FINETUNED
    assert cfg.embedding_layer == 36
    assert cfg.num_codebooks == 8


def test_derived_paths(tmp_path):
    cfg = PipelineConfig(exp_dir=str(tmp_path / "exp"), data_dir=str(tmp_path / "data"))

    assert cfg.teacher_checkpoint == tmp_path / "exp" / "hubert_models" / "hubert_xtralarge_ll60k_finetune_ls960.pt"
    assert cfg.codebook_dir == tmp_path / "exp" / "vq" / "hubert_xtralarge_ll60k_finetune_ls960_layer36_cb8"
    assert cfg.manifest_dir == tmp_path / "data" / "vq_fbank_layer36_cb8"
    assert cfg.download_staging_dir == tmp_path / "exp" / "download_codebook"


def test_config_is_immutable():
    cfg = PipelineConfig()
    with pytest.raises(AttributeError):
        cfg.stage = 3


def test_strings_are_coerced_to_enums():
    cfg = PipelineConfig(codebook_source="compute", teacher_model_id="hubert_xtralarge_ll60k")

    assert cfg.codebook_source is CodebookSource.COMPUTE
    assert not cfg.use_extracted_codebook
    assert cfg.teacher_model_id is TeacherModel.HUBERT_XL


@pytest.mark.parametrize(
    "kwargs",
    [
        {"teacher_model_id": "wav2vec2_base"},
        {"codebook_source": "maybe"},
        {"stage": 3, "stop_stage": 1},
        {"stage": -1},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(UnsupportedConfigurationError):
        PipelineConfig(**kwargs)


def test_unknown_keys_rejected():
    with pytest.raises(UnsupportedConfigurationError):
        PipelineConfig.from_dict({"num_codebook": 8})


@pytest.mark.parametrize("value, expected", [("True", True), ("false", False), ("1", True), ("no", False), (True, True)])
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


def test_parse_bool_rejects_garbage():
    with pytest.raises(ValueError):
        parse_bool("sometimes")


@pytest.mark.parametrize("visible, expected", [("0,1,2,3", 4), ("0", 1), ("2,5", 2), ("0,1,", 2)])
def test_world_size_counts_visible_devices(visible, expected):
    assert world_size_from_env({"CUDA_VISIBLE_DEVICES": visible}) == expected


def test_world_size_requires_a_device():
    with pytest.raises(MissingPreconditionError):
        world_size_from_env({"CUDA_VISIBLE_DEVICES": ""})


@pytest.mark.skipif(importlib.util.find_spec("yaml") is None, reason="PyYAML not installed")
def test_yaml_config_respects_env_overrides(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text(
        """
pipeline:
  stage: 2
  stop_stage: 3
  exp_dir: ./from-config
  full_libri: false
teacher:
  model_id: hubert_xtralarge_ll60k
  embedding_layer: 30
codebook:
  source: compute
  num_codebooks: 16
train:
  num_epochs: 5
decode:
  method: greedy_search
""",
        encoding="utf-8",
    )

    cfg = PipelineConfig.from_yaml(str(path), env={"VQDISTILL_EXP_DIR": "./from-env"}, num_epochs=7)

    assert cfg.exp_dir == "./from-env"
    assert (cfg.stage, cfg.stop_stage) == (2, 3)
    assert cfg.full_libri is False
    assert cfg.codebook_source is CodebookSource.COMPUTE
    assert cfg.teacher_model_id is TeacherModel.HUBERT_XL
    assert cfg.embedding_layer == 30
    assert cfg.num_codebooks == 16
    assert cfg.num_epochs == 7
    assert cfg.decoding_method == "greedy_search"


def test_from_yaml_without_file_uses_env_and_overrides():
    cfg = PipelineConfig.from_yaml(None, env={"VQDISTILL_DATA_DIR": "/corpora/data"}, stage=3)

    assert cfg.data_dir == "/corpora/data"
    assert cfg.stage == 3


def test_world_size_falls_back_to_torch(monkeypatch):
    torch = pytest.importorskip("torch")
    monkeypatch.setattr(torch.cuda, "device_count", lambda: 2)

    assert world_size_from_env({}) == 2


@pytest.mark.parametrize("value, expected", [("False", False), ("true", True), ("0", False)])
def test_boolean_fields_coerced_from_strings(value, expected):
    cfg = PipelineConfig(full_libri=value, dry_run=value)

    assert cfg.full_libri is expected
    assert cfg.dry_run is expected


def test_boolean_field_rejects_garbage():
    with pytest.raises(UnsupportedConfigurationError, match="full_libri"):
        PipelineConfig(full_libri="sometimes")


@pytest.mark.skipif(importlib.util.find_spec("yaml") is None, reason="PyYAML not installed")
def test_yaml_empty_section_uses_defaults(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text("pipeline:\nteacher:\n  model_id: hubert_xtralarge_ll60k\n", encoding="utf-8")

    cfg = PipelineConfig.from_yaml(str(path), env={})

    assert (cfg.stage, cfg.stop_stage) == (0, 4)
    assert cfg.teacher_model_id is TeacherModel.HUBERT_XL


@pytest.mark.skipif(importlib.util.find_spec("yaml") is None, reason="PyYAML not installed")
@pytest.mark.parametrize("text", ["- stage\n- 2\n", "pipeline: 3\n", "decode:\n  - greedy_search\n"])
def test_yaml_non_mapping_rejected(tmp_path, text):
    path = tmp_path / "pipeline.yaml"
    path.write_text(text, encoding="utf-8")

    with pytest.raises(UnsupportedConfigurationError):
        PipelineConfig.from_yaml(str(path), env={})

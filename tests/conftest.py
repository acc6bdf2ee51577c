"""
Test configuration and fixtures
"""
import gzip
import json
import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from vqdistill.commands import flatten_args  # noqa: E402
from vqdistill.config import PipelineConfig  # noqa: E402


class FakeRunner:
    """Records commands instead of running them.

    ``hooks`` maps a program name (first word after the interpreter) to a
    callable receiving the command, used to simulate side effects.
    """

    def __init__(self, hooks=None, dry_run=False):
        self.hooks = hooks or {}
        self.dry_run = dry_run
        self.commands = []

    def run(self, cmd, cwd=None):
        cmd = [str(c) for c in cmd]
        self.commands.append(cmd)
        key = cmd[1] if cmd[0] == "git" else Path(cmd[0]).name
        if key in self.hooks:
            self.hooks[key](cmd)

    def run_script(self, script, args):
        cmd = [str(script), *flatten_args(args)]
        self.commands.append(cmd)
        hook = self.hooks.get(Path(script).name)
        if hook:
            hook(cmd)

    def scripts(self):
        return [Path(cmd[0]).name for cmd in self.commands]


def write_cuts(path, ids, storage_path=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt", encoding="utf-8") as handle:
        for cut_id in ids:
            cut = {"id": cut_id, "start": 0.0, "duration": 1.0, "channel": 0, "type": "MonoCut"}
            if storage_path is not None:
                cut["custom"] = {
                    "codebook_indexes": {
                        "array": {
                            "storage_type": "numpy_hdf5",
                            "storage_path": str(storage_path),
                            "storage_key": cut_id,
                            "shape": [50, 8],
                        },
                        "temporal_dim": 0,
                        "frame_shift": 0.02,
                        "start": 0,
                    }
                }
            handle.write(json.dumps(cut) + "\n")


def read_ids(path):
    with gzip.open(path, "rt", encoding="utf-8") as handle:
        return [json.loads(line)["id"] for line in handle if line.strip()]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def make_config(tmp_path):
    """Config rooted in tmp_path with the fbank directory in place."""
    (tmp_path / "data" / "fbank").mkdir(parents=True)

    def _make(**overrides):
        values = {
            "exp_dir": str(tmp_path / "exp"),
            "recipe_dir": str(tmp_path / "recipe"),
            "data_dir": str(tmp_path / "data"),
        }
        values.update(overrides)
        return PipelineConfig(**values)

    return _make

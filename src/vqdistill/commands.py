"""Running the external recipe scripts and tools."""
import importlib.util
import logging
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


def format_value(value) -> str:
    # the recipe scripts parse booleans with str2bool and expect "True"/"False"
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(getattr(value, "value", value))


def flatten_args(arg_map: Dict[str, object]) -> List[str]:
    """``{"exp_dir": "x", "avg": 10}`` -> ``["--exp-dir", "x", "--avg", "10"]``. None values are dropped."""
    out: List[str] = []
    for key, value in arg_map.items():
        if value is None:
            continue
        out.extend([f"--{key.replace('_', '-')}", format_value(value)])
    return out


def missing_modules(names: Iterable[str], finder: Callable = importlib.util.find_spec) -> List[str]:
    return [name for name in names if finder(name) is None]


class CommandRunner:
    """Blocking subprocess execution.

    A non-zero exit raises ``subprocess.CalledProcessError``. With ``dry_run`` the
    command line is only logged.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def run(self, cmd: Sequence[str], cwd: Optional[str] = None):
        cmd = [str(c) for c in cmd]
        if self.dry_run:
            logger.info("[dry-run] %s", shlex.join(cmd))
            return None
        logger.info("Running: %s", shlex.join(cmd))
        return subprocess.run(cmd, cwd=cwd, check=True)

    def run_script(self, script: Path, args: Dict[str, object]):
        return self.run([sys.executable, str(script), *flatten_args(args)])

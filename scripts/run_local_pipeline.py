import os
import sys
from pathlib import Path

# Ensure local `src/` is importable when running from repo root
repo_root = Path(__file__).resolve().parent.parent
src_path = str(repo_root / 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

# One visible device is enough to print the training command
os.environ.setdefault('CUDA_VISIBLE_DEVICES', '0')

from vqdistill.cli import main

if __name__ == '__main__':
    # Print every external command of the download-mode pipeline without running it
    args = sys.argv[1:] or ['--config', str(repo_root / 'configs' / 'pipeline.yaml'), '--stage', '2', '--stop-stage', '4']
    sys.exit(main(args + ['--dry-run']))

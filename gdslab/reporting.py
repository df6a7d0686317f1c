"""
Console reporting helpers shared by the walkthrough stages.

Every stage prints its progress to the console and mirrors the transcript
into a log file inside its results directory.
"""

import sys
import traceback
from contextlib import contextmanager
from pathlib import Path


class Tee:
    """Helper class to write to both console and file"""
    def __init__(self, *files):
        self.files = files

    def write(self, data):
        for f in self.files:
            f.write(data)
            f.flush()

    def flush(self):
        for f in self.files:
            f.flush()


def print_header(title: str, level: int = 1):
    """Print formatted section header"""
    if level == 1:
        print("\n" + "=" * 80)
        print(f"{title.upper()}")
        print("=" * 80)
    elif level == 2:
        print(f"\n[{title}]")
        print("-" * 80)
    else:
        print(f"\n--- {title} ---")


def significance_stars(p_value: float) -> str:
    """Conventional significance markers for a p-value."""
    if p_value is None or p_value != p_value:
        return ""
    return "***" if p_value < 0.01 else "**" if p_value < 0.05 else "*" if p_value < 0.10 else ""


@contextmanager
def stage_log(log_file: Path):
    """
    Mirror stdout into ``log_file`` for the duration of a stage.

    Errors are printed with their traceback (so they land in the log too)
    and then re-raised.
    """
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    with open(log_file, 'w', encoding='utf-8') as f:
        old_stdout = sys.stdout
        sys.stdout = Tee(old_stdout, f)

        try:
            yield log_file
        except Exception as e:
            print(f"\n✗ ERROR: {str(e)}")
            traceback.print_exc(file=sys.stdout)
            raise
        finally:
            sys.stdout = old_stdout
            print(f"\n✓ Log saved to: {log_file}")

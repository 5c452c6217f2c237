"""specloop - drive a coding agent through a spec until it signals completion."""

from importlib.metadata import PackageNotFoundError, version

from specloop.loop import SpecLoop, run_loop
from specloop.schemas import IterationOutcome, LoopReport, LoopResult, SpecRef

__all__ = ["IterationOutcome", "LoopReport", "LoopResult", "SpecLoop", "SpecRef", "run_loop"]

try:
    __version__ = version("specloop")
except PackageNotFoundError:
    __version__ = "0.0.0"

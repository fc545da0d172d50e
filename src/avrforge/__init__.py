"""avrforge - peripheral code generation, building and flashing for AVR boards."""

__version__ = "0.1.0"

from .pipeline import DeployResult, FirmwarePipeline, GenerationResult  # noqa: E402

__all__ = [
    "DeployResult",
    "FirmwarePipeline",
    "GenerationResult",
    "__version__",
]

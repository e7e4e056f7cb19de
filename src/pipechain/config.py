"""
Evaluator Configuration.

Configuration dataclass and environment variable support for the chain
evaluator.
"""

from dataclasses import dataclass, field
import os


# =============================================================================
# Default Values
# =============================================================================

PLACEHOLDER_POLICIES = ("all", "first", "error")
DEFAULT_PLACEHOLDER_POLICY = "all"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


@dataclass
class EvaluatorConfig:
    """Configuration for chain evaluation.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a value-object.
    ::: This is stateless.

    Supports environment variables:
    - PIPECHAIN_PLACEHOLDER_POLICY: how repeated placeholders in one step are
      handled: all, first or error (default: all)
    - PIPECHAIN_LOG_STEPS: log every step at DEBUG level (default: false)
    """

    placeholder_policy: str = field(default_factory=lambda: os.environ.get(
        "PIPECHAIN_PLACEHOLDER_POLICY", DEFAULT_PLACEHOLDER_POLICY
    ).lower())
    log_steps: bool = field(default_factory=lambda: _env_flag("PIPECHAIN_LOG_STEPS"))

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings."""
        warnings = []

        if self.placeholder_policy not in PLACEHOLDER_POLICIES:
            warnings.append(
                f"Unknown placeholder policy {self.placeholder_policy!r} - "
                f"expected one of {', '.join(PLACEHOLDER_POLICIES)}; using {DEFAULT_PLACEHOLDER_POLICY!r}"
            )

        return warnings

    @property
    def effective_policy(self) -> str:
        """Placeholder policy, falling back to the default when invalid."""
        if self.placeholder_policy in PLACEHOLDER_POLICIES:
            return self.placeholder_policy
        return DEFAULT_PLACEHOLDER_POLICY

    @classmethod
    def from_env(cls) -> "EvaluatorConfig":
        """Create configuration from environment variables."""
        return cls()

    @classmethod
    def for_testing(cls, placeholder_policy: str = DEFAULT_PLACEHOLDER_POLICY) -> "EvaluatorConfig":
        """Create configuration for testing, independent of the environment."""
        return cls(placeholder_policy=placeholder_policy, log_steps=False)

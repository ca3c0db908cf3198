"""valet-doctor: control plane for a local Homebrew PHP / Valet environment."""

__version__ = "0.1.0"

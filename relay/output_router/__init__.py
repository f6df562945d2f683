"""OutputRouter module."""

from .router import IOutputRouter, OutputRouter, plan_fragments

__all__ = ["IOutputRouter", "OutputRouter", "plan_fragments"]

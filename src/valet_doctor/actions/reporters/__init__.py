"""Reporters - Render snapshots, outcome reports and check results."""

from valet_doctor.actions.reporters.base import BaseReporter
from valet_doctor.actions.reporters.json_reporter import JsonReporter
from valet_doctor.actions.reporters.rich_reporter import RichReporter

__all__ = ["BaseReporter", "JsonReporter", "RichReporter"]

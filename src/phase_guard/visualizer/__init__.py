"""Visualizer package - Rich terminal views for complexity scores and mission progress."""

from .complexity import render_complexity_score
from .phase_progress import render_phase_history, render_phase_plan, render_phase_progress, render_phase_summary

__all__ = [
	"render_complexity_score",
	"render_phase_history",
	"render_phase_plan",
	"render_phase_progress",
	"render_phase_summary",
]

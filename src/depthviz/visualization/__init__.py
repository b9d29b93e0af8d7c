"""Visualization outputs for rendered heatmaps."""

from .legend import render_annotated_preview, render_legend

__all__ = [
    "render_annotated_preview",
    "render_legend",
]

"""Renderers turning the finished models into text artifacts.

Every renderer returns a string; writing files is left to the caller.
"""

from .class_diagram import render_class_diagram
from .er_diagram import render_er_diagram
from .shacl import class_model_to_shacl, render_shacl, shacl_validate
from .sql import render_sql

__all__ = [
    "class_model_to_shacl",
    "render_class_diagram",
    "render_er_diagram",
    "render_shacl",
    "render_sql",
    "shacl_validate",
]

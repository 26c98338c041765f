"""Sphinx configuration for the user management service documentation."""

from __future__ import annotations

import os
import sys
from datetime import datetime

SERVICE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, SERVICE_DIR)


project = "User Management Service"
author = "Accounts Team"
copyright = f"{datetime.now():%Y}, {author}"
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.intersphinx",
    "sphinx.ext.napoleon",
    "sphinx_autodoc_typehints",
]

# Drivers and native extensions are not needed to render the API reference.
autodoc_mock_imports = ["psycopg", "psycopg_pool", "argon2"]
autodoc_member_order = "bysource"
autodoc_typehints = "description"
napoleon_google_docstring = False
napoleon_numpy_docstring = True

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "jwt": ("https://pyjwt.readthedocs.io/en/stable", None),
}

exclude_patterns: list[str] = ["_build"]
html_theme = "alabaster"

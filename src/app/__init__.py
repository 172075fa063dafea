"""
Top-level Streamlit app package.

This package hosts the LabLab participant app (Streamlit), decoupled from the lablab.*
library modules. The run controller and its collaborators live under lablab.*; the
Streamlit UI shell, charts and app-specific helpers live here.

CLI entrypoint (configured in pyproject.toml):
    lablab-app = app.main:main
"""

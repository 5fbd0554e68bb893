"""
ingest-switcher — Switch OBS media inputs between preset ingest links.

Modules:
  core/       — OBS WebSocket client, connection lifecycle, error taxonomy
  sources/    — Input discovery, selection & active-target reconciliation
  switching/  — Kind-aware media switch
  links/      — Read-only link presets
  api/        — FastAPI REST + WebSocket control surface
  config/     — Settings, env loading, YAML config
"""

__version__ = "1.0.0"

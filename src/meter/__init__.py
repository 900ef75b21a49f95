"""
Core of the meter steps tracker.

Modules:
- gemini: Gemini reading-extraction client with model fallback
- image: photo preprocessing (resize, JPEG, base64)
- ledger: state transitions (onboarding, settings, readings)
- dashboard: pure calculations over the readings
- report: plain-text rendering of the dashboard
- config: environment-driven settings
"""

__all__ = [
    "config",
    "dashboard",
    "gemini",
    "image",
    "ledger",
    "report",
]

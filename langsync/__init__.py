"""
langsync - keeps translated XML localization trees in sync with an English template.

Main packages:
- translation: placeholder codec, fingerprint manifest, diff engine, pipeline
- ai: translation oracle client and providers
- core: resumable job ledger
- web: JSON API for starting and resuming jobs
"""

__version__ = "1.0.0"

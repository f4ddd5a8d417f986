"""
Core module - Job ledger

This module provides:
- jobs: TranslationJob, CommandType and the JobService that persists ledgers
"""

from langsync.core.jobs import (
    CommandType,
    JobService,
    TranslationJob,
    make_job_id,
)

"""
Translation module - Core translation functionality

This module provides:
- placeholders: markup token extraction and restoration
- manifest: per-language source fingerprints
- diff: translatable node discovery and change detection
- processor: oracle batching, format repair and incremental processing
- verifier / manager: per-file operations and job coordination

Import the submodules directly; the manager pulls in the AI service, which
itself depends on translation.utils.
"""

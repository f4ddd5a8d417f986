"""
Per-file operations of a language pass

- translate_new_file: translate every translatable node of a template file
- verify_and_fix_file: diff an existing target file and repair what changed
- generate_manifest_for_file: record source hashes for already translated files

Each operation writes its target document first and only then commits the
new fingerprints, so a failed save never leaves hashes for text that is not
on disk.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional

from lxml import etree

from langsync.config import RunContext
from langsync.ai.exceptions import OperationCancelledError
from langsync.logger import get_logger
from langsync.translation.diff import (
    get_translatable_items,
    iter_translatable_nodes,
    update_element_translation,
)
from langsync.translation.documents import (
    copy_file,
    ensure_directory,
    get_root_elements,
    load_xml,
    local_name,
    save_xml,
)
from langsync.translation.manifest import FingerprintManifest, content_hash
from langsync.translation.models import TranslationItem
from langsync.translation.processor import ItemsProgressCallback, NodeTranslationService

logger = get_logger(__name__)

NEEDS_FIX_REASON = "NEEDS FIX"


class VerificationService:
    """Runs the per-file operations against one run context."""

    def __init__(self, context: RunContext, node_translation_service: NodeTranslationService):
        self.context = context
        self.node_translation_service = node_translation_service

    def source_path(self, relative_path: str) -> Path:
        return self.context.template_path / relative_path

    @staticmethod
    def target_path(relative_path: str, target_language_path: Path) -> Path:
        return Path(target_language_path) / relative_path

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Cancelled before the file was processed", code="cancelled")

    def _apply_translations(
        self,
        doc: etree._ElementTree,
        items: Dict[str, TranslationItem],
        translations: Dict[str, str],
    ) -> Dict[str, str]:
        """
        Write translations into doc.

        Returns:
            node key -> source hash for every node that was updated
        """
        root = doc.getroot()
        elements = get_root_elements(doc)
        hashes = {}
        for key, item in items.items():
            final_translation = translations.get(key)
            if final_translation is None:
                continue
            element = elements.get(key)
            if element is None:
                element = etree.SubElement(root, key)
                elements[key] = element
            update_element_translation(element, final_translation)
            hashes[key] = content_hash(item.original_content)
        return hashes

    def translate_new_file(
        self,
        relative_path: str,
        target_language_path: Path,
        language_name: str,
        manifest: FingerprintManifest,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ItemsProgressCallback] = None,
    ) -> None:
        """Translate a template file from scratch into the language folder."""
        self._check_cancelled(cancel_event)
        source_file = self.source_path(relative_path)
        target_file = self.target_path(relative_path, target_language_path)
        ensure_directory(target_file.parent)

        doc = load_xml(source_file)
        items = get_translatable_items(doc)

        if not items:
            if not target_file.exists():
                copy_file(source_file, target_file)
            logger.debug(f"{relative_path}: no translatable nodes, copied as-is")
            return

        translations = self.node_translation_service.translate_items(
            items, language_name, str(source_file), cancel_event, progress_callback
        )
        hashes = self._apply_translations(doc, items, translations)
        save_xml(target_file, doc)
        manifest.set_hashes(relative_path, hashes)
        logger.debug(f"{relative_path}: translated {len(hashes)} nodes")

    def verify_and_fix_file(
        self,
        relative_path: str,
        target_language_path: Path,
        language_name: str,
        manifest: FingerprintManifest,
        is_debug_mode: bool = False,
        debug_data: Optional[Dict[str, List[str]]] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ItemsProgressCallback] = None,
    ) -> None:
        """
        Bring an existing target file in line with its template.

        A missing target file is translated from scratch. In debug mode the
        reasons are recorded in debug_data and nothing is written.
        """
        self._check_cancelled(cancel_event)
        target_file = self.target_path(relative_path, target_language_path)

        if not target_file.exists():
            if is_debug_mode:
                if debug_data is not None:
                    debug_data[relative_path] = ["Target file not found."]
                return
            logger.info(f"New file {relative_path} found. Translating from scratch.")
            self.translate_new_file(relative_path, target_language_path, language_name, manifest,
                                    cancel_event, progress_callback)
            return

        source_doc = load_xml(self.source_path(relative_path))
        target_doc = load_xml(target_file)
        reasons: List[str] = []

        items = get_translatable_items(
            source_doc,
            get_root_elements(target_doc),
            manifest.get_file_hashes(relative_path),
            reasons if is_debug_mode else None,
        )

        if not items:
            logger.debug(f"{relative_path}: verified")
            return

        if is_debug_mode:
            if debug_data is not None:
                debug_data[relative_path] = reasons or [NEEDS_FIX_REASON]
            logger.info(f"NEEDS FIX: {relative_path} ({len(items)} nodes)")
            return

        logger.info(f"FIXING: {relative_path} ({len(items)} nodes)")
        translations = self.node_translation_service.translate_items(
            items, language_name, str(self.source_path(relative_path)), cancel_event, progress_callback
        )
        hashes = self._apply_translations(target_doc, items, translations)
        save_xml(target_file, target_doc)
        manifest.set_hashes(relative_path, hashes)

    def generate_manifest_for_file(
        self,
        relative_path: str,
        target_language_path: Path,
        manifest: FingerprintManifest,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Record the current source hashes of a file whose translation already exists."""
        self._check_cancelled(cancel_event)
        target_file = self.target_path(relative_path, target_language_path)
        if not target_file.exists():
            logger.info(f"SKIP: Target file not found for {relative_path}")
            return

        source_doc = load_xml(self.source_path(relative_path))
        hashes = {}
        for element, content in iter_translatable_nodes(source_doc):
            self._check_cancelled(cancel_event)
            hashes[local_name(element)] = content_hash(content)

        if not hashes:
            logger.debug(f"No translatable nodes in {relative_path}")
            return

        manifest.set_hashes(relative_path, hashes)
        logger.debug(f"Generated {len(hashes)} hashes for {relative_path}")

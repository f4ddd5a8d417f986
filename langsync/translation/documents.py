"""
XML document helpers

Loading, saving and copying localization documents with lxml. Comments and
whitespace are preserved because the English source text lives in comments
next to each translatable node.
"""

import shutil
from pathlib import Path
from typing import Dict
from xml.sax.saxutils import escape

from lxml import etree

from langsync.language_codes import get_language_folder_name
from langsync.logger import get_logger

logger = get_logger(__name__)

INFO_FILE_NAME = "Info.xml"


def _make_parser() -> etree.XMLParser:
    # One parser per call: lxml parsers must not be shared between threads
    return etree.XMLParser(remove_blank_text=False, remove_comments=False, resolve_entities=False)


def ensure_directory(path: Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def load_xml(file_path: Path) -> etree._ElementTree:
    return etree.parse(str(file_path), _make_parser())


def save_xml(file_path: Path, doc: etree._ElementTree) -> None:
    doc.write(str(file_path), encoding="utf-8", xml_declaration=True)


def copy_file(source: Path, destination: Path) -> None:
    shutil.copyfile(source, destination)


def is_element(node) -> bool:
    """True for real elements; comments and processing instructions have non-string tags."""
    return isinstance(node.tag, str)


def local_name(element) -> str:
    return etree.QName(element).localname


def inner_xml(element) -> str:
    """Serialized content of an element without its own start and end tags."""
    parts = [escape(element.text or "")]
    for child in element:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    return "".join(parts)


def get_root_elements(doc: etree._ElementTree) -> Dict[str, etree._Element]:
    """Direct child elements of the document root keyed by local name (later duplicates win)."""
    root = doc.getroot()
    if root is None:
        return {}
    return {local_name(el): el for el in root if is_element(el)}


def parse_fragment(content: str) -> etree._Element:
    """
    Parse markup content wrapped in a synthetic <root> element.

    Raises:
        etree.XMLSyntaxError: content is not well-formed markup.
    """
    return etree.fromstring(f"<root>{content}</root>", _make_parser())


def create_info_file(target_language_path: Path, formal_language_name: str,
                     language_code: str, native_name: str) -> Path:
    """Write the LanguageInfo descriptor of a language folder."""
    info = etree.Element("LanguageInfo")
    etree.SubElement(info, "englishName").text = get_language_folder_name(formal_language_name)
    etree.SubElement(info, "nativeName").text = native_name
    etree.SubElement(info, "cultureName").text = language_code

    info_file_path = Path(target_language_path) / INFO_FILE_NAME
    info_file_path.write_text(etree.tostring(info, encoding="unicode", pretty_print=True), encoding="utf-8")
    logger.info(f"Created {INFO_FILE_NAME} for {formal_language_name}")
    return info_file_path
